"""Hive inspection log built from spoken inspection reports."""

__version__ = "0.1.0"

from hivelog.extraction.schemas import ExtractionRecord, YesNo
from hivelog.models import Hive, InspectionRecord, InspectionSource

__all__ = [
    "ExtractionRecord",
    "Hive",
    "InspectionRecord",
    "InspectionSource",
    "YesNo",
    "__version__",
]
