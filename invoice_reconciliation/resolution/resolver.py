"""
Candidate resolution for invoice reconciliation.

Runs the resolution strategies in priority order and returns the line items
of the first purchase order found. Exactly one PO forms the candidate set;
line items are never pooled across several plausible POs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from invoice_reconciliation.models import InvoiceContext
from invoice_reconciliation.storage.schema import POLineItem, PurchaseOrder
from .strategies import (
    CandidateStrategy, ExplicitPOStrategy, OCRPONumberStrategy, SiteWindowStrategy
)

import logging
logger = logging.getLogger(__name__)


@dataclass
class ResolvedCandidates:
    """Purchase order chosen for an invoice and its line items."""
    purchase_order: Optional[PurchaseOrder] = None
    strategy: Optional[str] = None
    line_items: List[POLineItem] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.purchase_order is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'po_id': self.purchase_order.id if self.purchase_order else None,
            'po_number': self.purchase_order.po_number if self.purchase_order else None,
            'strategy': self.strategy,
            'line_item_count': len(self.line_items)
        }


def default_strategies(window_days: Optional[int] = None) -> List[CandidateStrategy]:
    """Resolution chain: explicit PO, PO number in text, vendor/site window."""
    return [
        ExplicitPOStrategy(),
        OCRPONumberStrategy(),
        SiteWindowStrategy(window_days=window_days),
    ]


class CandidateResolver:
    """
    Determines which PO line items an invoice is matched against.

    First strategy to return a purchase order wins.
    """

    def __init__(self, strategies: Optional[Sequence[CandidateStrategy]] = None):
        """
        Initialize candidate resolver.

        Args:
            strategies: Ordered strategies to try. If None, uses default_strategies().
        """
        self.logger = logging.getLogger(f"{__name__}.CandidateResolver")
        self.strategies = list(strategies) if strategies is not None else default_strategies()

    def load_line_items(self, session: Session, po: PurchaseOrder) -> List[POLineItem]:
        return list(session.execute(
            select(POLineItem)
            .where(POLineItem.po_id == po.id, POLineItem.org_id == po.org_id)
            .order_by(POLineItem.line_number, POLineItem.id)
        ).scalars())

    def resolve(self, session: Session, context: InvoiceContext) -> ResolvedCandidates:
        """
        Resolve the candidate PO line items for an invoice.

        Args:
            session: Open database session
            context: Invoice fields used for resolution

        Returns:
            ResolvedCandidates; empty when no strategy found a PO
        """
        for strategy in self.strategies:
            po = strategy.find_purchase_order(session, context)
            if po is None:
                continue

            line_items = self.load_line_items(session, po)
            self.logger.info(f"Resolved PO {po.po_number} via {strategy.name} "
                             f"with {len(line_items)} line items")
            return ResolvedCandidates(purchase_order=po, strategy=strategy.name, line_items=line_items)

        self.logger.info(f"No purchase order resolved for vendor {context.vendor_id} (org {context.org_id})")
        return ResolvedCandidates()

    def resolve_candidates(self, session: Session, context: InvoiceContext) -> List[POLineItem]:
        """Line items of the resolved PO (possibly empty)."""
        return self.resolve(session, context).line_items
