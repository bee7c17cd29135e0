"""
Unit tests for purchase order candidate resolution.

Tests each resolution strategy against an in-memory database and the
priority order of the resolver chain.
"""

from datetime import date, timedelta
from decimal import Decimal
from types import SimpleNamespace

from invoice_reconciliation.models import InvoiceContext, POStatus, ServiceScope
from invoice_reconciliation.resolution import (
    CandidateResolver, ExplicitPOStrategy, OCRPONumberStrategy, SiteWindowStrategy
)
from invoice_reconciliation.storage import session_scope

from sample_data import (
    INVOICE_DATE, ORG_ID, OTHER_ORG_ID, PO_LINES, SITE_ID, VENDOR_ID,
    add_purchase_order, make_session_factory
)


def context(**overrides):
    values = dict(
        org_id=ORG_ID,
        vendor_id=VENDOR_ID,
        invoice_date=INVOICE_DATE,
        invoice_total=Decimal("500.00"),
        site_id=SITE_ID
    )
    values.update(overrides)
    return InvoiceContext(**values)


class TestExplicitPOStrategy:
    """Test cases for explicit PO resolution."""

    def setup_method(self):
        """Setup test environment."""
        self.session_factory = make_session_factory()
        self.strategy = ExplicitPOStrategy()

    def test_finds_linked_po(self):
        """Test lookup by PO id."""
        with session_scope(self.session_factory) as session:
            po = add_purchase_order(session, PO_LINES)
            found = self.strategy.find_purchase_order(session, context(explicit_po_id=po.id))
            assert found.id == po.id

    def test_no_po_id(self):
        """Test strategy passes when no PO id is given."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, PO_LINES)
            assert self.strategy.find_purchase_order(session, context()) is None

    def test_other_tenant_po_not_visible(self):
        """Test POs of another organization are never returned."""
        with session_scope(self.session_factory) as session:
            po = add_purchase_order(session, PO_LINES, org_id=OTHER_ORG_ID)
            assert self.strategy.find_purchase_order(session, context(explicit_po_id=po.id)) is None

    def test_recurring_po_skipped(self):
        """Test a linked standing recurring PO is not a candidate."""
        with session_scope(self.session_factory) as session:
            po = add_purchase_order(session, PO_LINES, service_scope=ServiceScope.RECURRING)
            assert self.strategy.find_purchase_order(session, context(explicit_po_id=po.id)) is None


class TestOCRPONumberStrategy:
    """Test cases for PO number lookup from invoice text."""

    def setup_method(self):
        """Setup test environment."""
        self.session_factory = make_session_factory()
        self.strategy = OCRPONumberStrategy()

    def test_po_number_in_text(self):
        """Test a labelled PO number resolves to the stored PO."""
        with session_scope(self.session_factory) as session:
            po = add_purchase_order(session, PO_LINES, po_number="PO-2024-00031", site_id=None)
            found = self.strategy.find_purchase_order(
                session, context(ocr_raw_text="Purchase Order #: PO-2024-00031", site_id=None)
            )
            assert found.id == po.id

    def test_unknown_po_number(self):
        """Test a PO number that does not exist yields nothing."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, PO_LINES, po_number="PO-2024-00031")
            found = self.strategy.find_purchase_order(session, context(ocr_raw_text="PO-2024-99999"))
            assert found is None

    def test_recurring_po_number_ignored(self):
        """Test a printed number of a recurring PO does not resolve."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, PO_LINES, po_number="PO-2024-00031", site_id=None,
                               service_scope=ServiceScope.RECURRING)
            found = self.strategy.find_purchase_order(
                session, context(ocr_raw_text="Ref PO-2024-00031", site_id=None)
            )
            assert found is None

    def test_no_text(self):
        """Test strategy passes without OCR text."""
        with session_scope(self.session_factory) as session:
            assert self.strategy.find_purchase_order(session, context()) is None


class TestSiteWindowStrategy:
    """Test cases for vendor/site date window search."""

    def setup_method(self):
        """Setup test environment."""
        self.session_factory = make_session_factory()
        self.strategy = SiteWindowStrategy(window_days=45)

    def test_closest_total_wins(self):
        """Test the PO with the smallest total delta is chosen."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, po_number="PO-2024-00001", total="900.00")
            closest = add_purchase_order(session, po_number="PO-2024-00002", total="480.00")

            found = self.strategy.find_purchase_order(session, context())
            assert found.id == closest.id

    def test_total_tie_prefers_newest(self):
        """Test equal deltas fall back to the most recent po_date."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, po_number="PO-2024-00001", total="500.00", po_date=date(2024, 2, 1))
            newest = add_purchase_order(session, po_number="PO-2024-00002", total="500.00", po_date=date(2024, 3, 5))

            found = self.strategy.find_purchase_order(session, context())
            assert found.id == newest.id

    def test_recurring_po_excluded(self):
        """Test standing recurring POs are not candidates."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, service_scope=ServiceScope.RECURRING)
            assert self.strategy.find_purchase_order(session, context()) is None

    def test_closed_po_excluded(self):
        """Test completed and cancelled POs are not candidates."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, po_number="PO-2024-00001", status=POStatus.COMPLETED)
            add_purchase_order(session, po_number="PO-2024-00002", status=POStatus.CANCELLED)
            assert self.strategy.find_purchase_order(session, context()) is None

    def test_outside_date_window(self):
        """Test POs dated outside the window are ignored."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, po_date=INVOICE_DATE - timedelta(days=46))
            assert self.strategy.find_purchase_order(session, context()) is None

    def test_expected_delivery_in_window(self):
        """Test an old PO qualifies through its expected delivery date."""
        with session_scope(self.session_factory) as session:
            po = add_purchase_order(
                session,
                po_date=INVOICE_DATE - timedelta(days=90),
                expected_delivery_date=INVOICE_DATE + timedelta(days=10)
            )
            found = self.strategy.find_purchase_order(session, context())
            assert found.id == po.id

    def test_other_site_or_vendor_excluded(self):
        """Test POs for another site or vendor are not candidates."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, po_number="PO-2024-00001", site_id="site-2")
            add_purchase_order(session, po_number="PO-2024-00002", vendor_id="vendor-2")
            assert self.strategy.find_purchase_order(session, context()) is None

    def test_requires_site(self):
        """Test the search is skipped when the invoice has no site."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, site_id=None)
            assert self.strategy.find_purchase_order(session, context(site_id=None)) is None

    def test_rank_order(self):
        """Test ranking by delta, then newest po_date, then id."""
        candidates = [
            SimpleNamespace(id="c", total=Decimal("500"), po_date=date(2024, 3, 1)),
            SimpleNamespace(id="b", total=Decimal("500"), po_date=date(2024, 3, 1)),
            SimpleNamespace(id="a", total=Decimal("700"), po_date=date(2024, 3, 9)),
            SimpleNamespace(id="d", total=Decimal("500"), po_date=date(2024, 3, 2)),
        ]
        ranked = self.strategy.rank(candidates, Decimal("520"))
        assert [po.id for po in ranked] == ["d", "b", "c", "a"]


class TestCandidateResolver:
    """Test cases for the resolver chain."""

    def setup_method(self):
        """Setup test environment."""
        self.session_factory = make_session_factory()
        self.resolver = CandidateResolver()

    def test_explicit_po_first(self):
        """Test an explicit PO wins over a PO number in the text."""
        with session_scope(self.session_factory) as session:
            explicit = add_purchase_order(session, PO_LINES, po_number="PO-2024-00001")
            add_purchase_order(session, PO_LINES, po_number="PO-2024-00031")

            resolved = self.resolver.resolve(
                session, context(explicit_po_id=explicit.id, ocr_raw_text="PO-2024-00031")
            )
            assert resolved.purchase_order.id == explicit.id
            assert resolved.strategy == "explicit_po"

    def test_ocr_before_site_window(self):
        """Test a PO number in the text wins over the site window search."""
        with session_scope(self.session_factory) as session:
            add_purchase_order(session, PO_LINES, po_number="PO-2024-00001", total="500.00")
            printed = add_purchase_order(session, PO_LINES, po_number="PO-2024-00031", total="9000.00")

            resolved = self.resolver.resolve(session, context(ocr_raw_text="Ref PO-2024-00031"))
            assert resolved.purchase_order.id == printed.id
            assert resolved.strategy == "ocr_po_number"

    def test_site_window_fallback(self):
        """Test the site window search runs when nothing else resolves."""
        with session_scope(self.session_factory) as session:
            po = add_purchase_order(session, PO_LINES)

            resolved = self.resolver.resolve(session, context())
            assert resolved.purchase_order.id == po.id
            assert resolved.strategy == "site_window"

    def test_line_items_of_one_po_in_order(self):
        """Test candidates are the line items of the resolved PO only."""
        with session_scope(self.session_factory) as session:
            po = add_purchase_order(session, PO_LINES, po_number="PO-2024-00001")
            add_purchase_order(session, [("Other service", "10.00")], po_number="PO-2024-00002", total="10.00")

            line_items = self.resolver.resolve_candidates(session, context(explicit_po_id=po.id))
            assert [li.description for li in line_items] == ["Weekly Pickup", "Haul 40 yd"]

    def test_nothing_resolved(self):
        """Test an empty result when no strategy finds a PO."""
        with session_scope(self.session_factory) as session:
            resolved = self.resolver.resolve(session, context(site_id=None))
            assert resolved.found is False
            assert resolved.line_items == []
            assert resolved.to_dict()['po_id'] is None

    def test_recurring_po_never_resolved(self):
        """Test a recurring PO is skipped whether linked or printed on the invoice."""
        with session_scope(self.session_factory) as session:
            recurring = add_purchase_order(session, PO_LINES, po_number="PO-2024-00031", site_id=None,
                                           service_scope=ServiceScope.RECURRING)

            resolved = self.resolver.resolve(
                session, context(explicit_po_id=recurring.id, ocr_raw_text="Ref PO-2024-00031", site_id=None)
            )
            assert resolved.found is False
            assert resolved.line_items == []
