"""Salvage and validation of language-model extraction output.

Turns the model's loosely-structured JSON text into validated
ExtractionRecord values, ready for hive reconciliation.
"""
