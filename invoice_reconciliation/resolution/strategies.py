"""
Purchase order resolution strategies.

Each strategy looks for the single purchase order a vendor invoice belongs
to and returns it, or None to let the next strategy try. Strategies are
independent so new ones can be added to the chain and tested on their own.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from invoice_reconciliation.config.app_config import ReconciliationConfig
from invoice_reconciliation.models import InvoiceContext, POStatus, ServiceScope
from invoice_reconciliation.storage.schema import PurchaseOrder
from .po_number import extract_po_numbers

import logging
logger = logging.getLogger(__name__)

OPEN_PO_STATUSES = (POStatus.DRAFT, POStatus.SENT, POStatus.APPROVED)


class CandidateStrategy(ABC):
    """
    Abstract base class for purchase order resolution strategies.
    """

    name = "base"

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @abstractmethod
    def find_purchase_order(self, session: Session,
                            context: InvoiceContext) -> Optional[PurchaseOrder]:
        """
        Look for the purchase order of an invoice.

        Args:
            session: Open database session
            context: Invoice fields used for resolution

        Returns:
            The purchase order, or None if this strategy cannot decide
        """
        pass


class ExplicitPOStrategy(CandidateStrategy):
    """Use a PO id given by the caller or linked on the invoice."""

    name = "explicit_po"

    def find_purchase_order(self, session: Session,
                            context: InvoiceContext) -> Optional[PurchaseOrder]:
        if not context.explicit_po_id:
            return None

        po = session.execute(
            select(PurchaseOrder).where(
                PurchaseOrder.id == context.explicit_po_id,
                PurchaseOrder.org_id == context.org_id,
                PurchaseOrder.deleted_at.is_(None)
            )
        ).scalar_one_or_none()

        if po is None:
            self.logger.warning(f"Explicit PO {context.explicit_po_id} not found for org {context.org_id}")
            return None
        if po.service_scope != ServiceScope.NON_RECURRING:
            self.logger.warning(f"Explicit PO {po.po_number} covers recurring service, not a match candidate")
            return None
        return po


class OCRPONumberStrategy(CandidateStrategy):
    """Find a PO number printed on the invoice and look it up exactly."""

    name = "ocr_po_number"

    def find_purchase_order(self, session: Session,
                            context: InvoiceContext) -> Optional[PurchaseOrder]:
        po_numbers = extract_po_numbers(context.ocr_raw_text)
        if not po_numbers:
            return None

        for po_number in po_numbers:
            po = session.execute(
                select(PurchaseOrder).where(
                    func.upper(PurchaseOrder.po_number) == po_number,
                    PurchaseOrder.org_id == context.org_id,
                    PurchaseOrder.service_scope == ServiceScope.NON_RECURRING,
                    PurchaseOrder.deleted_at.is_(None)
                ).order_by(PurchaseOrder.created_at.desc())
            ).scalars().first()
            if po is not None:
                self.logger.debug(f"PO number {po_number} from invoice text resolved to {po.id}")
                return po

        self.logger.info(f"PO numbers {po_numbers} found in invoice text but none exist for org {context.org_id}")
        return None


class SiteWindowStrategy(CandidateStrategy):
    """
    Search open non-recurring POs for the invoice's vendor and site.

    A PO qualifies when its po_date or expected_delivery_date lies within
    ``window_days`` of the invoice date. The PO whose total is closest to the
    invoice total wins; ties go to the most recent po_date.
    """

    name = "site_window"

    def __init__(self, window_days: Optional[int] = None):
        super().__init__()
        self.window_days = window_days if window_days is not None else ReconciliationConfig.PO_DATE_WINDOW_DAYS

    def _invoice_date(self, context: InvoiceContext) -> date:
        invoice_date = context.invoice_date or date.today()
        if isinstance(invoice_date, datetime):
            return invoice_date.date()
        return invoice_date

    def list_candidates(self, session: Session, context: InvoiceContext) -> List[PurchaseOrder]:
        """All POs inside the date window, unranked."""
        invoice_date = self._invoice_date(context)
        window_start = invoice_date - timedelta(days=self.window_days)
        window_end = invoice_date + timedelta(days=self.window_days)

        conditions = [
            PurchaseOrder.org_id == context.org_id,
            PurchaseOrder.vendor_id == context.vendor_id,
            PurchaseOrder.site_id == context.site_id,
            PurchaseOrder.service_scope == ServiceScope.NON_RECURRING,
            PurchaseOrder.status.in_(OPEN_PO_STATUSES),
            PurchaseOrder.deleted_at.is_(None),
            or_(
                PurchaseOrder.po_date.between(window_start, window_end),
                and_(
                    PurchaseOrder.expected_delivery_date.isnot(None),
                    PurchaseOrder.expected_delivery_date.between(window_start, window_end)
                )
            )
        ]
        if context.client_id:
            conditions.append(PurchaseOrder.client_id == context.client_id)

        return list(session.execute(select(PurchaseOrder).where(*conditions)).scalars())

    def rank(self, candidates: List[PurchaseOrder], invoice_total: Decimal) -> List[PurchaseOrder]:
        """Order candidates by total delta, then newest po_date, then id."""
        def sort_key(po: PurchaseOrder):
            total = Decimal(str(po.total)) if po.total is not None else Decimal('0')
            return (abs(total - invoice_total), -po.po_date.toordinal(), po.id)

        return sorted(candidates, key=sort_key)

    def find_purchase_order(self, session: Session,
                            context: InvoiceContext) -> Optional[PurchaseOrder]:
        if not context.site_id:
            return None

        candidates = self.list_candidates(session, context)
        if not candidates:
            self.logger.info(f"No open non-recurring POs for vendor {context.vendor_id} "
                             f"at site {context.site_id} within ±{self.window_days} days")
            return None

        invoice_total = Decimal(str(context.invoice_total or 0))
        ranked = self.rank(candidates, invoice_total)
        self.logger.debug(f"Site window search ranked {len(ranked)} POs, best is {ranked[0].po_number}")
        return ranked[0]
