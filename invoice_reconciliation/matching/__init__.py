"""
Line item matching engine for reconciling vendor invoices with purchase orders.

Provides description similarity scoring and the weighted, two-gate line item
matcher.
"""

from .similarity import SimilarityScorer, similarity
from .line_item_matcher import CandidateScore, LineItemMatch, LineItemMatcher

__all__ = [
    "SimilarityScorer",
    "similarity",
    "CandidateScore",
    "LineItemMatch",
    "LineItemMatcher"
]
