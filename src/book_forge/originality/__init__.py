"""Originality scanning and issue tracking."""

from .scanner import OriginalityScanner, ScanPhases
from .search import GoogleBooksSearch, SearchHit, TextSearch
from .service import OriginalityService
from .tracker import TrackingResult, reconcile

__all__ = [
    "GoogleBooksSearch",
    "OriginalityScanner",
    "OriginalityService",
    "ScanPhases",
    "SearchHit",
    "TextSearch",
    "TrackingResult",
    "reconcile",
]
