"""
Match record lifecycle.

Persists one match record per vendor line item decision and moves it
through its review states::

    pending -> approved     (system auto-approval or a reviewer)
    pending -> rejected     (reviewer)
    approved -> rejected    (reviewer)

Nothing returns to pending. A rejection resets the vendor line item so it
can be matched again and raises a ``rejected_match`` discrepancy. Re-running
auto-match supersedes the active records of every line item that is not
approved instead of piling up duplicates; approved line items keep theirs.

All methods work inside the caller's session; the caller owns the
transaction.
"""

from typing import Any, Collection, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from invoice_reconciliation.matching.line_item_matcher import LineItemMatch, LineItemMatcher, to_decimal
from invoice_reconciliation.models import (
    ConflictError, DiscrepancyStatus, DiscrepancyType, MatchType, NotFoundError,
    RecommendedAction, ReviewDecision, Severity
)
from invoice_reconciliation.storage.schema import (
    Discrepancy, MatchRecord, POLineItem, VendorLineItem, utcnow
)

import logging
logger = logging.getLogger(__name__)

SYSTEM_USER = "system"

# Discrepancy types raised by auto-match runs (superseded on re-match)
ENGINE_DISCREPANCY_TYPES = (
    DiscrepancyType.NO_MATCH,
    DiscrepancyType.NO_PO,
    DiscrepancyType.PRICE_MISMATCH,
)


def describe_line(description: Optional[str], amount: Any) -> str:
    return f"{description or ''} - ${to_decimal(amount):.2f}"


class MatchLifecycle:
    """Writes match records and discrepancies and applies review transitions."""

    def __init__(self, matcher: Optional[LineItemMatcher] = None):
        self.logger = logging.getLogger(f"{__name__}.MatchLifecycle")
        self.matcher = matcher or LineItemMatcher()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_match_record(self, session: Session, org_id: str, match_id: str) -> MatchRecord:
        record = session.execute(
            select(MatchRecord).where(MatchRecord.id == match_id, MatchRecord.org_id == org_id)
        ).scalar_one_or_none()
        if record is None:
            raise NotFoundError("Match record not found", code="MATCH_NOT_FOUND")
        return record

    def get_vendor_line_item(self, session: Session, org_id: str, line_item_id: str) -> VendorLineItem:
        line_item = session.execute(
            select(VendorLineItem).where(VendorLineItem.id == line_item_id, VendorLineItem.org_id == org_id)
        ).scalar_one_or_none()
        if line_item is None:
            raise NotFoundError("Invoice line item not found", code="LINE_ITEM_NOT_FOUND")
        return line_item

    def list_match_records(self, session: Session, org_id: str, invoice_id: str,
                           include_superseded: bool = False) -> List[MatchRecord]:
        """Match records of an invoice, newest first."""
        query = select(MatchRecord).where(
            MatchRecord.vendor_invoice_id == invoice_id,
            MatchRecord.org_id == org_id
        )
        if not include_superseded:
            query = query.where(MatchRecord.superseded_at.is_(None))
        query = query.order_by(MatchRecord.created_at.desc(), MatchRecord.id)
        return list(session.execute(query).scalars())

    def list_discrepancies(self, session: Session, org_id: str, invoice_id: str,
                           status: Optional[DiscrepancyStatus] = None) -> List[Discrepancy]:
        query = select(Discrepancy).where(
            Discrepancy.invoice_id == invoice_id,
            Discrepancy.org_id == org_id
        )
        if status is not None:
            query = query.where(Discrepancy.status == status)
        query = query.order_by(Discrepancy.created_at, Discrepancy.id)
        return list(session.execute(query).scalars())

    # ------------------------------------------------------------------
    # Auto-match writes
    # ------------------------------------------------------------------

    def approved_records_by_line(self, session: Session, org_id: str,
                                 invoice_id: str) -> Dict[str, MatchRecord]:
        """Active approved records of an invoice keyed by vendor line item id."""
        return {
            record.vendor_line_item_id: record
            for record in self.list_match_records(session, org_id, invoice_id)
            if record.review_decision == ReviewDecision.APPROVED
        }

    def supersede_active_records(self, session: Session, org_id: str, invoice_id: str,
                                 line_item_ids: Optional[Collection[str]] = None) -> int:
        """
        Retire active match records before a new auto-match run.

        Approved records are never retired here; their line items keep them.
        Open discrepancies raised by earlier runs on the retired lines are
        marked superseded too. Rejection discrepancies are left for the review
        workflow.

        Args:
            session: Active session
            org_id: Tenant id
            invoice_id: Invoice being re-matched
            line_item_ids: Restrict to these vendor line items. None means every
                line item of the invoice without an approved record.

        Returns:
            Number of match records superseded
        """
        active = [
            record for record in self.list_match_records(session, org_id, invoice_id)
            if record.review_decision != ReviewDecision.APPROVED
        ]
        if line_item_ids is None:
            approved = self.approved_records_by_line(session, org_id, invoice_id)
            line_item_ids = list(session.execute(
                select(VendorLineItem.id).where(
                    VendorLineItem.invoice_id == invoice_id,
                    VendorLineItem.org_id == org_id,
                    VendorLineItem.id.notin_(list(approved))
                )
            ).scalars())
        else:
            line_item_ids = list(line_item_ids)
            active = [record for record in active if record.vendor_line_item_id in line_item_ids]

        now = utcnow()
        for record in active:
            record.superseded_at = now

        self.supersede_engine_discrepancies(session, org_id, invoice_id, line_item_ids)
        session.flush()

        if active:
            self.logger.info(f"Superseded {len(active)} match record(s) on invoice {invoice_id}")
        return len(active)

    def supersede_engine_discrepancies(self, session: Session, org_id: str, invoice_id: str,
                                       line_item_ids: Collection[str]) -> None:
        """Mark open auto-match discrepancies of the given line items superseded."""
        if not line_item_ids:
            return
        session.execute(
            update(Discrepancy)
            .where(
                Discrepancy.invoice_id == invoice_id,
                Discrepancy.org_id == org_id,
                Discrepancy.line_item_id.in_(list(line_item_ids)),
                Discrepancy.status == DiscrepancyStatus.OPEN,
                Discrepancy.discrepancy_type.in_(ENGINE_DISCREPANCY_TYPES)
            )
            .values(status=DiscrepancyStatus.SUPERSEDED)
            .execution_options(synchronize_session='fetch')
        )

    def record_decision(self, session: Session, org_id: str, invoice_id: str,
                        decision: LineItemMatch, po_id: Optional[str]) -> MatchRecord:
        """
        Persist a matcher decision and mirror it onto the vendor line item.

        Auto-approved decisions are stored approved and stamped by the system
        user; everything else waits for review as pending.
        """
        vendor_item = decision.vendor_item
        po_item = decision.po_item
        auto_approved = decision.recommended_action == RecommendedAction.AUTO_APPROVE

        record = MatchRecord(
            org_id=org_id,
            vendor_invoice_id=invoice_id,
            vendor_line_item_id=vendor_item.id,
            po_id=po_id if po_item is not None else None,
            po_line_item_id=po_item.id if po_item is not None else None,
            match_type=decision.match_type,
            similarity_score=decision.similarity_score,
            price_difference_percentage=decision.price_difference_percentage,
            review_decision=ReviewDecision.APPROVED if auto_approved else ReviewDecision.PENDING,
            matched_by=SYSTEM_USER if auto_approved else None,
            matched_at=utcnow() if auto_approved else None,
        )
        session.add(record)

        # Line item carries the comparison outcome, not the review decision
        vendor_item.comparison_outcome = decision.match_type
        vendor_item.po_line_item_id = po_item.id if po_item is not None else None

        if decision.recommended_action != RecommendedAction.AUTO_APPROVE:
            self.raise_match_discrepancy(session, org_id, invoice_id, decision)

        session.flush()
        return record

    def raise_match_discrepancy(self, session: Session, org_id: str, invoice_id: str,
                                decision: LineItemMatch) -> Discrepancy:
        """Raise the discrepancy for a decision that was not auto-approved."""
        vendor_item = decision.vendor_item
        po_item = decision.po_item
        actual_value = describe_line(vendor_item.description, vendor_item.amount)

        if po_item is None:
            discrepancy = Discrepancy(
                org_id=org_id,
                invoice_id=invoice_id,
                line_item_id=vendor_item.id,
                discrepancy_type=DiscrepancyType.NO_PO,
                expected_value="PO required",
                actual_value=actual_value,
                amount_difference=to_decimal(vendor_item.amount),
                severity=Severity.HIGH,
            )
        elif decision.match_type == MatchType.UNMATCHED:
            discrepancy = Discrepancy(
                org_id=org_id,
                invoice_id=invoice_id,
                line_item_id=vendor_item.id,
                discrepancy_type=DiscrepancyType.NO_MATCH,
                expected_value=describe_line(po_item.description, po_item.amount),
                actual_value=actual_value,
                amount_difference=decision.price_difference,
                severity=Severity.HIGH,
            )
        else:
            discrepancy = Discrepancy(
                org_id=org_id,
                invoice_id=invoice_id,
                line_item_id=vendor_item.id,
                discrepancy_type=DiscrepancyType.PRICE_MISMATCH,
                expected_value=describe_line(po_item.description, po_item.amount),
                actual_value=actual_value,
                amount_difference=decision.price_difference,
                severity=Severity.MEDIUM,
            )

        discrepancy.status = DiscrepancyStatus.OPEN
        session.add(discrepancy)
        return discrepancy

    # ------------------------------------------------------------------
    # Review transitions
    # ------------------------------------------------------------------

    def approve(self, session: Session, org_id: str, match_id: str, user_id: str) -> MatchRecord:
        """
        Approve a pending match record.

        Raises:
            NotFoundError: If the record does not exist for the tenant
            ConflictError: If the record is superseded or not pending
        """
        record = self.get_match_record(session, org_id, match_id)
        if not record.is_active or record.review_decision != ReviewDecision.PENDING:
            raise ConflictError(
                f"Cannot approve a {self._state(record)} match record",
                code="INVALID_MATCH_TRANSITION"
            )

        record.review_decision = ReviewDecision.APPROVED
        record.matched_by = user_id
        record.matched_at = utcnow()
        session.flush()

        self.logger.info(f"Match record {match_id} approved by {user_id}")
        return record

    def reject(self, session: Session, org_id: str, match_id: str, user_id: str,
               reason: Optional[str] = None) -> MatchRecord:
        """
        Reject a pending or approved match record.

        Resets the vendor line item to unmatched, clears its PO line reference
        and raises one ``rejected_match`` discrepancy.

        Raises:
            NotFoundError: If the record does not exist for the tenant
            ConflictError: If the record is superseded or already rejected
        """
        record = self.get_match_record(session, org_id, match_id)
        if not record.is_active or record.review_decision == ReviewDecision.REJECTED:
            raise ConflictError(
                f"Cannot reject a {self._state(record)} match record",
                code="INVALID_MATCH_TRANSITION"
            )

        record.review_decision = ReviewDecision.REJECTED
        record.matched_by = user_id
        record.matched_at = utcnow()
        record.notes = reason

        line_item = self.get_vendor_line_item(session, org_id, record.vendor_line_item_id)
        line_item.comparison_outcome = MatchType.UNMATCHED
        line_item.po_line_item_id = None

        session.add(Discrepancy(
            org_id=org_id,
            invoice_id=record.vendor_invoice_id,
            line_item_id=line_item.id,
            discrepancy_type=DiscrepancyType.REJECTED_MATCH,
            actual_value=describe_line(line_item.description, line_item.amount),
            severity=Severity.MEDIUM,
            status=DiscrepancyStatus.OPEN,
            resolution_notes=reason or "Match rejected by user",
        ))
        session.flush()

        self.logger.info(f"Match record {match_id} rejected by {user_id}")
        return record

    def manual_match(self, session: Session, org_id: str, vendor_line_item_id: str,
                     po_line_item_id: str, user_id: str, notes: Optional[str] = None) -> MatchRecord:
        """
        Link a vendor line item to a PO line item chosen by a reviewer.

        The line item's active record is superseded and an approved ``manual``
        record takes its place. Open auto-match discrepancies of the line item
        are marked superseded.

        Raises:
            NotFoundError: If the line item or PO line item does not exist for the tenant
            ConflictError: If the line item already has an approved record
        """
        line_item = self.get_vendor_line_item(session, org_id, vendor_line_item_id)
        po_item = session.execute(
            select(POLineItem).where(POLineItem.id == po_line_item_id, POLineItem.org_id == org_id)
        ).scalar_one_or_none()
        if po_item is None:
            raise NotFoundError("PO line item not found", code="PO_LINE_ITEM_NOT_FOUND")

        now = utcnow()
        active = list(session.execute(
            select(MatchRecord).where(
                MatchRecord.vendor_line_item_id == line_item.id,
                MatchRecord.org_id == org_id,
                MatchRecord.superseded_at.is_(None)
            )
        ).scalars())
        approved = [r for r in active if r.review_decision == ReviewDecision.APPROVED]
        if approved:
            raise ConflictError(
                "Line item already has an approved match record; reject it before matching manually",
                code="INVALID_MATCH_TRANSITION"
            )
        for previous in active:
            previous.superseded_at = now
        self.supersede_engine_discrepancies(session, org_id, line_item.invoice_id, [line_item.id])

        scored = self.matcher.score_candidate(line_item, po_item)
        record = MatchRecord(
            org_id=org_id,
            vendor_invoice_id=line_item.invoice_id,
            vendor_line_item_id=line_item.id,
            po_id=po_item.po_id,
            po_line_item_id=po_item.id,
            match_type=MatchType.MANUAL,
            similarity_score=scored.description_similarity,
            price_difference_percentage=scored.price_difference_percentage,
            review_decision=ReviewDecision.APPROVED,
            matched_by=user_id,
            matched_at=now,
            notes=notes,
        )
        session.add(record)

        line_item.comparison_outcome = MatchType.MANUAL
        line_item.po_line_item_id = po_item.id
        session.flush()

        self.logger.info(f"Line item {vendor_line_item_id} manually matched to {po_line_item_id} by {user_id}")
        return record

    def _state(self, record: MatchRecord) -> str:
        return "superseded" if not record.is_active else record.review_decision.value
