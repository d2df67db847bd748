"""Hive registry snapshot and hive-reference resolution."""
