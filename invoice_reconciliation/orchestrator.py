"""
Reconciliation orchestrator.

Entry point of the engine. ``auto_match_invoice`` loads the invoice, resolves
its candidate purchase order once, matches every line item and persists the
decisions, all inside one unit of work: either every line item gets a match
record or none does.
"""

import time
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from invoice_reconciliation.config.settings_provider import SettingsProvider
from invoice_reconciliation.lifecycle import MatchLifecycle
from invoice_reconciliation.matching.line_item_matcher import HUNDRED, LineItemMatcher, to_decimal
from invoice_reconciliation.models import (
    ConflictError, DiscrepancyStatus, InvoiceContext, MatchResult, MatchType, NotFoundError,
    RecommendedAction
)
from invoice_reconciliation.resolution.resolver import CandidateResolver
from invoice_reconciliation.storage.database import session_scope
from invoice_reconciliation.storage.schema import MatchRecord, POLineItem, VendorInvoice, VendorLineItem

import logging
logger = logging.getLogger(__name__)


class ReconciliationService:
    """
    Runs invoice reconciliation and the review operations around it.

    Each public method is one transaction on a fresh session.
    """

    def __init__(self, session_factory: sessionmaker,
                 settings_provider: Optional[SettingsProvider] = None,
                 resolver: Optional[CandidateResolver] = None,
                 matcher: Optional[LineItemMatcher] = None,
                 lifecycle: Optional[MatchLifecycle] = None):
        """
        Initialize reconciliation service.

        Args:
            session_factory: Factory for database sessions
            settings_provider: Tenant settings access. Defaults to SettingsProvider().
            resolver: Candidate PO resolver. Defaults to the standard strategy chain.
            matcher: Line item matcher. Defaults to LineItemMatcher().
            lifecycle: Match record writer. Defaults to MatchLifecycle(matcher).
        """
        self.logger = logging.getLogger(f"{__name__}.ReconciliationService")
        self.session_factory = session_factory
        self.settings_provider = settings_provider or SettingsProvider()
        self.resolver = resolver or CandidateResolver()
        self.matcher = matcher or LineItemMatcher()
        self.lifecycle = lifecycle or MatchLifecycle(self.matcher)

    def _load_invoice(self, session: Session, org_id: str, invoice_id: str) -> VendorInvoice:
        invoice = session.execute(
            select(VendorInvoice).where(
                VendorInvoice.id == invoice_id,
                VendorInvoice.org_id == org_id,
                VendorInvoice.deleted_at.is_(None)
            )
        ).scalar_one_or_none()
        if invoice is None:
            raise NotFoundError("Invoice not found", code="INVOICE_NOT_FOUND")
        return invoice

    def _load_line_items(self, session: Session, org_id: str, invoice_id: str) -> List[VendorLineItem]:
        return list(session.execute(
            select(VendorLineItem)
            .where(VendorLineItem.invoice_id == invoice_id, VendorLineItem.org_id == org_id)
            .order_by(VendorLineItem.line_number, VendorLineItem.id)
        ).scalars())

    def build_context(self, invoice: VendorInvoice, po_id: Optional[str] = None) -> InvoiceContext:
        """Resolution inputs for an invoice; a requested PO overrides the linked one."""
        return InvoiceContext(
            org_id=invoice.org_id,
            vendor_id=invoice.vendor_id,
            client_id=invoice.client_id,
            site_id=invoice.site_id,
            explicit_po_id=po_id or invoice.po_id,
            invoice_date=invoice.invoice_date,
            invoice_total=to_decimal(invoice.total),
            ocr_raw_text=invoice.ocr_raw_text
        )

    def auto_match_invoice(self, org_id: str, vendor_invoice_id: str,
                           po_id: Optional[str] = None) -> List[MatchResult]:
        """
        Match every line item of a vendor invoice against its purchase order.

        Args:
            org_id: Tenant id
            vendor_invoice_id: Invoice to reconcile
            po_id: Optional PO to match against, overriding any PO linked to the invoice

        Returns:
            One MatchResult per vendor line item, in line order. Line items
            with an approved record keep it and are reported from it.

        Raises:
            NotFoundError: INVOICE_NOT_FOUND or NO_LINE_ITEMS
            ConflictError: INVOICE_ALREADY_RECONCILED when every line item is approved
        """
        start_time = time.time()

        with session_scope(self.session_factory) as session:
            settings = self.settings_provider.get_matching_settings(session, org_id)

            invoice = self._load_invoice(session, org_id, vendor_invoice_id)
            line_items = self._load_line_items(session, org_id, invoice.id)
            if not line_items:
                raise NotFoundError("No line items found for this invoice", code="NO_LINE_ITEMS")

            approved = self.lifecycle.approved_records_by_line(session, org_id, invoice.id)
            open_line_ids = [li.id for li in line_items if li.id not in approved]
            if not open_line_ids:
                raise ConflictError(
                    "Every line item of this invoice has an approved match record",
                    code="INVOICE_ALREADY_RECONCILED"
                )

            resolved = self.resolver.resolve(session, self.build_context(invoice, po_id))
            resolved_po_id = resolved.purchase_order.id if resolved.found else None

            self.lifecycle.supersede_active_records(session, org_id, invoice.id, open_line_ids)

            results: List[MatchResult] = []
            for line_item in line_items:
                if line_item.id in approved:
                    results.append(self._approved_result(session, line_item, approved[line_item.id]))
                    continue

                decision = self.matcher.match_line_item(line_item, resolved.line_items, settings)
                record = self.lifecycle.record_decision(session, org_id, invoice.id, decision, resolved_po_id)

                results.append(MatchResult(
                    vendor_line_item_id=line_item.id,
                    po_line_item_id=decision.po_item.id if decision.po_item is not None else None,
                    match_type=decision.match_type,
                    similarity_score=decision.similarity_score,
                    price_difference=decision.price_difference,
                    price_difference_percentage=decision.price_difference_percentage,
                    recommended_action=decision.recommended_action,
                    match_record_id=record.id
                ))

        processing_time = time.time() - start_time
        summary = self.summarize(results)
        self.logger.info(f"Auto-matched invoice {vendor_invoice_id} ({len(results)} line items, "
                         f"PO via {resolved.strategy or 'none'}) in {processing_time:.3f}s: {summary}")
        return results

    def _approved_result(self, session: Session, line_item: VendorLineItem,
                         record: MatchRecord) -> MatchResult:
        """Report an already approved line item without matching it again."""
        po_item = session.get(POLineItem, record.po_line_item_id) if record.po_line_item_id else None
        if po_item is not None:
            price_difference, percentage = self.matcher.calculate_price_difference(line_item.amount, po_item.amount)
        else:
            price_difference, percentage = to_decimal(line_item.amount), HUNDRED

        return MatchResult(
            vendor_line_item_id=line_item.id,
            po_line_item_id=record.po_line_item_id,
            match_type=record.match_type,
            similarity_score=float(record.similarity_score or 0.0),
            price_difference=price_difference,
            price_difference_percentage=percentage,
            recommended_action=RecommendedAction.AUTO_APPROVE,
            match_record_id=record.id
        )

    def summarize(self, results: List[MatchResult]) -> Dict[str, int]:
        """Count results per match type."""
        summary = {match_type.value: 0 for match_type in MatchType}
        for result in results:
            summary[result.match_type.value] += 1
        return summary

    # ------------------------------------------------------------------
    # Review operations
    # ------------------------------------------------------------------

    def approve_match(self, org_id: str, match_id: str, user_id: str) -> Dict[str, Any]:
        with session_scope(self.session_factory) as session:
            return self.lifecycle.approve(session, org_id, match_id, user_id).to_dict()

    def reject_match(self, org_id: str, match_id: str, user_id: str,
                     reason: Optional[str] = None) -> Dict[str, Any]:
        with session_scope(self.session_factory) as session:
            return self.lifecycle.reject(session, org_id, match_id, user_id, reason).to_dict()

    def manual_match(self, org_id: str, vendor_line_item_id: str, po_line_item_id: str,
                     user_id: str, notes: Optional[str] = None) -> Dict[str, Any]:
        with session_scope(self.session_factory) as session:
            record = self.lifecycle.manual_match(
                session, org_id, vendor_line_item_id, po_line_item_id, user_id, notes
            )
            return record.to_dict()

    def get_matching_records(self, org_id: str, invoice_id: str,
                             include_superseded: bool = False) -> List[Dict[str, Any]]:
        with session_scope(self.session_factory) as session:
            records = self.lifecycle.list_match_records(session, org_id, invoice_id, include_superseded)
            return [record.to_dict() for record in records]

    def get_discrepancies(self, org_id: str, invoice_id: str,
                          status: Optional[DiscrepancyStatus] = None) -> List[Dict[str, Any]]:
        with session_scope(self.session_factory) as session:
            discrepancies = self.lifecycle.list_discrepancies(session, org_id, invoice_id, status)
            return [discrepancy.to_dict() for discrepancy in discrepancies]

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self, org_id: str) -> Dict[str, Any]:
        with session_scope(self.session_factory) as session:
            return self.settings_provider.get_settings(session, org_id).to_dict()

    def update_settings(self, org_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        with session_scope(self.session_factory) as session:
            return self.settings_provider.update_settings(session, org_id, changes).to_dict()
