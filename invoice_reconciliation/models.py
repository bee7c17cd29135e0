"""
Core data models for the invoice reconciliation engine.

This module defines the enums, value objects and exception hierarchy shared
by the matcher, the candidate resolver, the match record lifecycle and the
orchestrator. Persistent entities live in ``invoice_reconciliation.storage``.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class MatchType(Enum):
    """Outcome of comparing a vendor line item with its best PO line item."""
    EXACT = "exact"
    FUZZY = "fuzzy"
    MANUAL = "manual"
    UNMATCHED = "unmatched"


class ReviewDecision(Enum):
    """Human (or system) sign-off state of a match record."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RecommendedAction(Enum):
    """What the engine suggests doing with a line item decision."""
    AUTO_APPROVE = "auto_approve"
    REVIEW = "review"
    FLAG_DISCREPANCY = "flag_discrepancy"


class DiscrepancyType(Enum):
    """Reasons a discrepancy can be raised."""
    NO_MATCH = "no_match"
    NO_PO = "no_po"
    PRICE_MISMATCH = "price_mismatch"
    REJECTED_MATCH = "rejected_match"


class Severity(Enum):
    HIGH = "high"
    MEDIUM = "medium"


class DiscrepancyStatus(Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    SUPERSEDED = "superseded"


class POStatus(Enum):
    """Purchase order workflow states."""
    DRAFT = "draft"
    SENT = "sent"
    APPROVED = "approved"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ServiceScope(Enum):
    """Whether a PO covers standing recurring service or a one-off purchase."""
    RECURRING = "recurring"
    NON_RECURRING = "non_recurring"


@dataclass
class MatchingSettings:
    """
    Thresholds the line-item matcher classifies against.

    Values are percentages on a 0-100 scale, matching the similarity score.
    """
    fuzzy_match_threshold: Decimal = Decimal("80")
    price_tolerance_percentage: Decimal = Decimal("5")
    auto_approve_exact_matches: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'fuzzy_match_threshold': float(self.fuzzy_match_threshold),
            'price_tolerance_percentage': float(self.price_tolerance_percentage),
            'auto_approve_exact_matches': self.auto_approve_exact_matches
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MatchingSettings':
        """Create MatchingSettings from dictionary."""
        return cls(
            fuzzy_match_threshold=Decimal(str(data.get('fuzzy_match_threshold', 80))),
            price_tolerance_percentage=Decimal(str(data.get('price_tolerance_percentage', 5))),
            auto_approve_exact_matches=bool(data.get('auto_approve_exact_matches', False))
        )


@dataclass
class MatchResult:
    """
    Per-line-item decision returned by an auto-match run.

    ``match_type`` describes the comparison outcome; it is not the review
    decision stored on the match record.
    """
    vendor_line_item_id: str
    po_line_item_id: Optional[str]
    match_type: MatchType
    similarity_score: float
    price_difference: Decimal
    price_difference_percentage: Decimal
    recommended_action: RecommendedAction
    match_record_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            'vendor_line_item_id': self.vendor_line_item_id,
            'po_line_item_id': self.po_line_item_id,
            'match_type': self.match_type.value,
            'similarity_score': self.similarity_score,
            'price_difference': float(self.price_difference),
            'price_difference_percentage': float(self.price_difference_percentage),
            'recommended_action': self.recommended_action.value,
            'match_record_id': self.match_record_id
        }


@dataclass
class InvoiceContext:
    """What the candidate resolver needs to know about a vendor invoice."""
    org_id: str
    vendor_id: str
    invoice_date: Any
    invoice_total: Decimal
    client_id: Optional[str] = None
    site_id: Optional[str] = None
    explicit_po_id: Optional[str] = None
    ocr_raw_text: Optional[str] = None


# Custom exceptions for invoice reconciliation
class ReconciliationError(Exception):
    """Base exception for invoice reconciliation operations."""
    status_code = 500
    default_code = "RECONCILIATION_ERROR"

    def __init__(self, message: str, code: Optional[str] = None,
                 details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the error part of an API response."""
        data = {'code': self.code, 'message': self.message}
        if self.details:
            data['details'] = self.details
        return data


class NotFoundError(ReconciliationError):
    """Raised when an invoice, line item or match record does not exist."""
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(ReconciliationError):
    """Raised when an operation is not allowed in the record's current state."""
    status_code = 409
    default_code = "CONFLICT"


class ValidationError(ReconciliationError):
    """Raised when input data or settings fail validation."""
    status_code = 400
    default_code = "VALIDATION_ERROR"


class ConfigurationError(ReconciliationError):
    """Raised when configuration is invalid or missing."""
    default_code = "CONFIGURATION_ERROR"
