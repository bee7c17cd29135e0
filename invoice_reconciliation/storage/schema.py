"""
Relational schema for the reconciliation engine.

Invoices, purchase orders and their line items are written by the upload and
PO services; the engine reads them and only mutates a vendor line item's
comparison outcome and PO line reference. Match records, discrepancies and
settings are owned by the engine.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum, Float, ForeignKey, Integer,
    Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship

from invoice_reconciliation.models import (
    DiscrepancyStatus, DiscrepancyType, MatchingSettings, MatchType, POStatus,
    ReviewDecision, ServiceScope, Severity
)

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _enum(enum_cls, name: str):
    # Store enum values ("non_recurring"), not member names
    return Enum(enum_cls, name=name, native_enum=False, length=32,
                values_callable=lambda members: [m.value for m in members])


def _money(value: Optional[Decimal]) -> Optional[float]:
    return float(value) if value is not None else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class VendorInvoice(Base):
    __tablename__ = 'invoices'

    id = Column(String(36), primary_key=True, default=new_id)
    org_id = Column(String(36), nullable=False, index=True)
    vendor_id = Column(String(36), nullable=False)
    client_id = Column(String(36))
    site_id = Column(String(36))
    po_id = Column(String(36), ForeignKey('purchase_orders.id'))
    invoice_number = Column(String(100))
    invoice_date = Column(Date)
    total = Column(Numeric(12, 2), nullable=False, default=Decimal('0'))
    ocr_raw_text = Column(Text)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)

    line_items = relationship(
        "VendorLineItem", back_populates="invoice",
        order_by="VendorLineItem.line_number"
    )


class VendorLineItem(Base):
    __tablename__ = 'invoice_line_items'

    id = Column(String(36), primary_key=True, default=new_id)
    org_id = Column(String(36), nullable=False, index=True)
    invoice_id = Column(String(36), ForeignKey('invoices.id'), nullable=False, index=True)
    line_number = Column(Integer, nullable=False, default=1)
    description = Column(Text, nullable=False, default='')
    quantity = Column(Numeric(12, 3), nullable=False, default=Decimal('1'))
    unit_price = Column(Numeric(12, 2))
    amount = Column(Numeric(12, 2), nullable=False, default=Decimal('0'))
    # Comparison outcome of the latest match; the column keeps its
    # historical name for the invoice approval workflow that reads it.
    comparison_outcome = Column('match_status', _enum(MatchType, 'match_type_enum'))
    po_line_item_id = Column(String(36), ForeignKey('po_line_items.id'))

    invoice = relationship("VendorInvoice", back_populates="line_items")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'line_number': self.line_number,
            'description': self.description,
            'quantity': _money(self.quantity),
            'unit_price': _money(self.unit_price),
            'amount': _money(self.amount),
            'match_status': self.comparison_outcome.value if self.comparison_outcome else None,
            'po_line_item_id': self.po_line_item_id,
        }


class PurchaseOrder(Base):
    __tablename__ = 'purchase_orders'
    __table_args__ = (UniqueConstraint('org_id', 'po_number', name='uq_purchase_orders_org_po_number'),)

    id = Column(String(36), primary_key=True, default=new_id)
    org_id = Column(String(36), nullable=False, index=True)
    po_number = Column(String(50), nullable=False)
    vendor_id = Column(String(36), nullable=False)
    client_id = Column(String(36))
    site_id = Column(String(36))
    po_date = Column(Date, nullable=False)
    expected_delivery_date = Column(Date)
    total = Column(Numeric(12, 2))
    status = Column(_enum(POStatus, 'po_status_enum'), nullable=False, default=POStatus.DRAFT)
    service_scope = Column(_enum(ServiceScope, 'service_scope_enum'), nullable=False,
                           default=ServiceScope.NON_RECURRING)
    deleted_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)

    line_items = relationship(
        "POLineItem", back_populates="purchase_order",
        order_by="POLineItem.line_number"
    )


class POLineItem(Base):
    __tablename__ = 'po_line_items'

    id = Column(String(36), primary_key=True, default=new_id)
    org_id = Column(String(36), nullable=False, index=True)
    po_id = Column(String(36), ForeignKey('purchase_orders.id'), nullable=False, index=True)
    line_number = Column(Integer, nullable=False, default=1)
    description = Column(Text, nullable=False, default='')
    quantity = Column(Numeric(12, 3), nullable=False, default=Decimal('1'))
    unit_price = Column(Numeric(12, 2))
    amount = Column(Numeric(12, 2), nullable=False, default=Decimal('0'))

    purchase_order = relationship("PurchaseOrder", back_populates="line_items")


class MatchRecord(Base):
    __tablename__ = 'invoice_matching_records'

    id = Column(String(36), primary_key=True, default=new_id)
    org_id = Column(String(36), nullable=False, index=True)
    vendor_invoice_id = Column(String(36), ForeignKey('invoices.id'), nullable=False, index=True)
    vendor_line_item_id = Column(String(36), ForeignKey('invoice_line_items.id'), nullable=False, index=True)
    po_id = Column(String(36), ForeignKey('purchase_orders.id'))
    po_line_item_id = Column(String(36), ForeignKey('po_line_items.id'))
    match_type = Column(_enum(MatchType, 'match_type_enum'), nullable=False)
    similarity_score = Column(Float, nullable=False, default=0.0)
    price_difference_percentage = Column(Numeric(12, 4))
    # Human sign-off; persisted as match_status for the review UI
    review_decision = Column('match_status', _enum(ReviewDecision, 'review_decision_enum'),
                             nullable=False, default=ReviewDecision.PENDING)
    matched_by = Column(String(100))
    matched_at = Column(DateTime)
    notes = Column(Text)
    superseded_at = Column(DateTime)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def is_active(self) -> bool:
        return self.superseded_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'org_id': self.org_id,
            'vendor_invoice_id': self.vendor_invoice_id,
            'vendor_line_item_id': self.vendor_line_item_id,
            'po_id': self.po_id,
            'po_line_item_id': self.po_line_item_id,
            'match_type': self.match_type.value,
            'similarity_score': self.similarity_score,
            'price_difference_percentage': _money(self.price_difference_percentage),
            'match_status': self.review_decision.value,
            'matched_by': self.matched_by,
            'matched_at': _iso(self.matched_at),
            'notes': self.notes,
            'superseded_at': _iso(self.superseded_at),
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Discrepancy(Base):
    __tablename__ = 'invoice_discrepancies'

    id = Column(String(36), primary_key=True, default=new_id)
    org_id = Column(String(36), nullable=False, index=True)
    invoice_id = Column(String(36), ForeignKey('invoices.id'), nullable=False, index=True)
    line_item_id = Column(String(36), ForeignKey('invoice_line_items.id'))
    discrepancy_type = Column(_enum(DiscrepancyType, 'discrepancy_type_enum'), nullable=False)
    expected_value = Column(Text)
    actual_value = Column(Text)
    amount_difference = Column(Numeric(12, 2))
    severity = Column(_enum(Severity, 'severity_enum'), nullable=False)
    status = Column(_enum(DiscrepancyStatus, 'discrepancy_status_enum'), nullable=False,
                    default=DiscrepancyStatus.OPEN)
    resolution_notes = Column(Text)
    created_at = Column(DateTime, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'invoice_id': self.invoice_id,
            'line_item_id': self.line_item_id,
            'discrepancy_type': self.discrepancy_type.value,
            'expected_value': self.expected_value,
            'actual_value': self.actual_value,
            'amount_difference': _money(self.amount_difference),
            'severity': self.severity.value,
            'status': self.status.value,
            'resolution_notes': self.resolution_notes,
            'created_at': _iso(self.created_at),
        }


class ReconciliationSettings(Base):
    __tablename__ = 'invoice_settings'

    id = Column(String(36), primary_key=True, default=new_id)
    org_id = Column(String(36), nullable=False, unique=True)
    fuzzy_match_threshold = Column(Numeric(5, 2), nullable=False)
    price_tolerance_percentage = Column(Numeric(5, 2), nullable=False)
    auto_approve_exact_matches = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_matching_settings(self) -> MatchingSettings:
        return MatchingSettings(
            fuzzy_match_threshold=Decimal(str(self.fuzzy_match_threshold)),
            price_tolerance_percentage=Decimal(str(self.price_tolerance_percentage)),
            auto_approve_exact_matches=bool(self.auto_approve_exact_matches)
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_matching_settings().to_dict()
        data.update({
            'id': self.id,
            'org_id': self.org_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        })
        return data
