"""
Persistence layer for the reconciliation engine.

SQLAlchemy ORM schema plus engine/session helpers providing the
transactional unit of work every engine operation runs in.
"""

from .schema import (
    Base,
    VendorInvoice,
    VendorLineItem,
    PurchaseOrder,
    POLineItem,
    MatchRecord,
    Discrepancy,
    ReconciliationSettings,
)
from .database import create_db_engine, create_session_factory, init_db, session_scope

__all__ = [
    "Base",
    "VendorInvoice",
    "VendorLineItem",
    "PurchaseOrder",
    "POLineItem",
    "MatchRecord",
    "Discrepancy",
    "ReconciliationSettings",
    "create_db_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
]
