"""
Services for the library inventory backend.

- AvailabilityEngine: issue and return at the desk, keyed by barcode
- ReportingProjection: read-only catalog, loan and dashboard views
"""

from .availability import AvailabilityEngine
from .reporting import OVERDUE_AFTER_DAYS, ReportingProjection

__all__ = ["OVERDUE_AFTER_DAYS", "AvailabilityEngine", "ReportingProjection"]
