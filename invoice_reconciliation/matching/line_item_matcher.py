"""
Line item matching for vendor invoices against purchase order lines.

Ranks every candidate PO line item with a weighted score of description
similarity and price proximity, then classifies the best candidate through
two gates: a similarity gate and a price tolerance gate. The ranking decides
which PO line is compared; the gates decide whether the comparison counts.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from invoice_reconciliation.models import (
    MatchingSettings, MatchType, RecommendedAction, ValidationError
)
from .similarity import SimilarityScorer

import logging
logger = logging.getLogger(__name__)

DESCRIPTION_WEIGHT = 0.7
PRICE_WEIGHT = 0.3

HUNDRED = Decimal('100')


def to_decimal(value: Union[Decimal, float, int, str, None]) -> Decimal:
    """
    Convert a monetary value to Decimal.

    Strings may carry a currency symbol and thousands separators. None is
    treated as zero.
    """
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    try:
        if isinstance(value, str):
            return Decimal(value.replace('$', '').replace(',', '').strip())
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValidationError(f"Invalid amount: {value!r}") from e


@dataclass
class CandidateScore:
    """Score of one PO line item against one vendor line item."""
    po_item: Any
    description_similarity: float
    price_difference: Decimal
    price_difference_percentage: Decimal
    price_score: float
    overall_score: float

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'po_line_item_id': getattr(self.po_item, 'id', None),
            'description_similarity': self.description_similarity,
            'price_difference': float(self.price_difference),
            'price_difference_percentage': float(self.price_difference_percentage),
            'price_score': self.price_score,
            'overall_score': self.overall_score
        }


@dataclass
class LineItemMatch:
    """Decision for a single vendor line item."""
    vendor_item: Any
    best_match: Optional[CandidateScore]
    match_type: MatchType
    recommended_action: RecommendedAction
    within_price_tolerance: bool
    candidates_evaluated: int

    @property
    def po_item(self) -> Optional[Any]:
        return self.best_match.po_item if self.best_match else None

    @property
    def similarity_score(self) -> float:
        return self.best_match.description_similarity if self.best_match else 0.0

    @property
    def price_difference(self) -> Decimal:
        # Without a candidate the whole line amount is unaccounted for
        if self.best_match is None:
            return to_decimal(getattr(self.vendor_item, 'amount', None))
        return self.best_match.price_difference

    @property
    def price_difference_percentage(self) -> Decimal:
        return self.best_match.price_difference_percentage if self.best_match else HUNDRED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'vendor_line_item_id': getattr(self.vendor_item, 'id', None),
            'best_match': self.best_match.to_dict() if self.best_match else None,
            'match_type': self.match_type.value,
            'recommended_action': self.recommended_action.value,
            'within_price_tolerance': self.within_price_tolerance,
            'candidates_evaluated': self.candidates_evaluated
        }


class LineItemMatcher:
    """
    Matches vendor invoice line items to purchase order line items.

    Candidates are scored as ``0.7 * description similarity + 0.3 * price
    score`` where the price score is ``100 - price difference %`` floored at
    zero. The candidate with the strictly greatest score wins; on ties the
    candidate seen first (PO line order) is kept.
    """

    def __init__(self, scorer: Optional[SimilarityScorer] = None):
        """
        Initialize line item matcher.

        Args:
            scorer: Similarity scorer for descriptions. If None, a default
                scorer is created.
        """
        self.logger = logging.getLogger(f"{__name__}.LineItemMatcher")
        self.scorer = scorer or SimilarityScorer()

    def calculate_price_difference(self, vendor_amount: Union[Decimal, float, str],
                                   po_amount: Union[Decimal, float, str]) -> Tuple[Decimal, Decimal]:
        """
        Calculate absolute and percentage price difference.

        Args:
            vendor_amount: Amount on the vendor invoice line
            po_amount: Amount on the PO line

        Returns:
            Tuple of (absolute difference, difference as % of the PO amount).
            The percentage is 100 when the PO amount is not positive.
        """
        vendor_decimal = to_decimal(vendor_amount)
        po_decimal = to_decimal(po_amount)

        difference = abs(vendor_decimal - po_decimal)
        if po_decimal > 0:
            percentage = difference / po_decimal * HUNDRED
        else:
            percentage = HUNDRED

        return difference, percentage

    def score_candidate(self, vendor_item: Any, po_item: Any) -> CandidateScore:
        """
        Score one PO line item against a vendor line item.

        Args:
            vendor_item: Vendor line item (needs ``description`` and ``amount``)
            po_item: PO line item (needs ``description`` and ``amount``)

        Returns:
            CandidateScore with similarity, price difference and overall score
        """
        description_similarity = self.scorer.similarity(vendor_item.description, po_item.description)
        price_difference, percentage = self.calculate_price_difference(vendor_item.amount, po_item.amount)

        price_score = float(max(Decimal('0'), HUNDRED - percentage))
        overall_score = DESCRIPTION_WEIGHT * description_similarity + PRICE_WEIGHT * price_score

        return CandidateScore(
            po_item=po_item,
            description_similarity=description_similarity,
            price_difference=price_difference,
            price_difference_percentage=percentage,
            price_score=price_score,
            overall_score=overall_score
        )

    def select_best_candidate(self, vendor_item: Any,
                              candidates: Sequence[Any]) -> Optional[CandidateScore]:
        """
        Pick the candidate with the strictly greatest overall score.

        Returns:
            Best CandidateScore, or None when there are no candidates
        """
        best: Optional[CandidateScore] = None
        for po_item in candidates:
            scored = self.score_candidate(vendor_item, po_item)
            self.logger.debug(f"Candidate {getattr(po_item, 'id', None)}: "
                              f"desc={scored.description_similarity:.2f} "
                              f"price={scored.price_score:.2f} overall={scored.overall_score:.2f}")
            if best is None or scored.overall_score > best.overall_score:
                best = scored
        return best

    def classify(self, best: Optional[CandidateScore],
                 settings: MatchingSettings) -> Tuple[MatchType, RecommendedAction, bool]:
        """
        Classify the best candidate against the tenant's thresholds.

        Returns:
            Tuple of (match type, recommended action, within price tolerance)
        """
        if best is None:
            return MatchType.UNMATCHED, RecommendedAction.FLAG_DISCREPANCY, False

        tolerance = to_decimal(settings.price_tolerance_percentage)
        fuzzy_threshold = float(settings.fuzzy_match_threshold)
        within_tolerance = best.price_difference_percentage <= tolerance

        if best.description_similarity == 100.0 and within_tolerance:
            if settings.auto_approve_exact_matches:
                return MatchType.EXACT, RecommendedAction.AUTO_APPROVE, True
            return MatchType.EXACT, RecommendedAction.REVIEW, True

        if best.description_similarity >= fuzzy_threshold and within_tolerance:
            return MatchType.FUZZY, RecommendedAction.REVIEW, True

        return MatchType.UNMATCHED, RecommendedAction.FLAG_DISCREPANCY, within_tolerance

    def match_line_item(self, vendor_item: Any, candidates: Sequence[Any],
                        settings: MatchingSettings) -> LineItemMatch:
        """
        Match a vendor line item against the candidate PO line items.

        Args:
            vendor_item: Vendor invoice line item
            candidates: PO line items of the resolved purchase order, in line order
            settings: Tenant thresholds

        Returns:
            LineItemMatch with the best candidate and its classification
        """
        candidates = list(candidates)
        best = self.select_best_candidate(vendor_item, candidates)
        match_type, action, within_tolerance = self.classify(best, settings)

        result = LineItemMatch(
            vendor_item=vendor_item,
            best_match=best,
            match_type=match_type,
            recommended_action=action,
            within_price_tolerance=within_tolerance,
            candidates_evaluated=len(candidates)
        )

        self.logger.debug(f"Line item {getattr(vendor_item, 'id', None)}: {match_type.value} "
                          f"({action.value}) over {len(candidates)} candidates")
        return result

    def match_line_items(self, vendor_items: Sequence[Any], candidates: Sequence[Any],
                         settings: MatchingSettings) -> List[LineItemMatch]:
        """Match every vendor line item against the same candidate set."""
        candidates = list(candidates)
        return [self.match_line_item(item, candidates, settings) for item in vendor_items]
