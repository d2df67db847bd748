"""Exception hierarchy for the hive inspection pipeline.

Only batch-level failures are exceptions. A candidate skipped for lacking
a hive reference and a record that resolves to no hive are outcomes, reported
through ``ValidationReport`` and ``ReconciliationResult`` respectively.
"""

from __future__ import annotations


class HivelogError(Exception):
    """Base class for all hivelog errors."""


class EmptyExtraction(HivelogError):
    """The language-model response held nothing to extract."""

    def __init__(self, message: str = "Extraction response is empty") -> None:
        super().__init__(message)


class MalformedExtraction(HivelogError):
    """The response could not be parsed as JSON, even after repair.

    Carries both texts so an operator can re-enter the data by hand.
    """

    def __init__(self, original: str, repaired: str, detail: str = "") -> None:
        self.original = original
        self.repaired = repaired
        self.detail = detail
        message = "Extraction response is not valid JSON after repair"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class WebhookPayloadError(HivelogError):
    """A voice-agent webhook payload is missing its message or analysis."""


class HiveNotFoundError(HivelogError):
    """No hive with the given id exists in the store."""

    def __init__(self, hive_id: str) -> None:
        self.hive_id = hive_id
        super().__init__(f"Hive not found: {hive_id}")


class InspectionNotFoundError(HivelogError):
    """No inspection with the given id exists in the store."""

    def __init__(self, inspection_id: str) -> None:
        self.inspection_id = inspection_id
        super().__init__(f"Inspection not found: {inspection_id}")
