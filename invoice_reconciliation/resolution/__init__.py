"""
Purchase order candidate resolution.

Finds the one purchase order whose line items a vendor invoice is matched
against, trying explicit links, PO numbers printed on the invoice, and a
vendor/site date-window search in that order.
"""

from .po_number import extract_po_number, extract_po_numbers, normalize_po_number
from .strategies import (
    CandidateStrategy,
    ExplicitPOStrategy,
    OCRPONumberStrategy,
    SiteWindowStrategy,
)
from .resolver import CandidateResolver, ResolvedCandidates, default_strategies

__all__ = [
    "extract_po_number",
    "extract_po_numbers",
    "normalize_po_number",
    "CandidateStrategy",
    "ExplicitPOStrategy",
    "OCRPONumberStrategy",
    "SiteWindowStrategy",
    "CandidateResolver",
    "ResolvedCandidates",
    "default_strategies",
]
