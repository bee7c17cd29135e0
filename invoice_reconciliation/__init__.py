"""
Invoice Reconciliation Engine

Matches the line items of uploaded vendor invoices against the line items of
the purchase order they were raised against, records every decision for
review, and raises discrepancies for anything that cannot be approved
automatically.

This package provides:
- Core data models, enums and exceptions
- Description similarity scoring and the weighted line item matcher
- Purchase order candidate resolution strategies
- Match record lifecycle (auto-approval, review, rejection, manual matches)
- Per-tenant reconciliation settings
- SQLAlchemy persistence and a Flask HTTP API
"""

from .models import (
    # Value objects
    MatchingSettings,
    MatchResult,
    InvoiceContext,

    # Enums
    MatchType,
    ReviewDecision,
    RecommendedAction,
    DiscrepancyType,
    DiscrepancyStatus,
    Severity,
    POStatus,
    ServiceScope,

    # Exceptions
    ReconciliationError,
    NotFoundError,
    ConflictError,
    ValidationError,
    ConfigurationError
)
from .orchestrator import ReconciliationService

__version__ = "1.0.0"
__author__ = "Invoice Processing System"

__all__ = [
    # Value objects
    "MatchingSettings",
    "MatchResult",
    "InvoiceContext",

    # Enums
    "MatchType",
    "ReviewDecision",
    "RecommendedAction",
    "DiscrepancyType",
    "DiscrepancyStatus",
    "Severity",
    "POStatus",
    "ServiceScope",

    # Exceptions
    "ReconciliationError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "ConfigurationError",

    # Service
    "ReconciliationService"
]
