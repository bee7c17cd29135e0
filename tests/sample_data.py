"""
Shared test data builders.

Each test class builds its own in-memory SQLite database so tests never
share state.
"""

from datetime import date
from decimal import Decimal

from invoice_reconciliation.models import POStatus, ServiceScope
from invoice_reconciliation.storage import (
    POLineItem, PurchaseOrder, VendorInvoice, VendorLineItem,
    create_db_engine, create_session_factory, init_db
)

ORG_ID = "org-1"
OTHER_ORG_ID = "org-2"
VENDOR_ID = "vendor-1"
SITE_ID = "site-1"
INVOICE_DATE = date(2024, 3, 10)


def make_session_factory():
    engine = create_db_engine("sqlite://", echo=False)
    init_db(engine)
    return create_session_factory(engine)


def add_purchase_order(session, lines=(), org_id=ORG_ID, po_number="PO-2024-00031",
                       vendor_id=VENDOR_ID, site_id=SITE_ID, client_id=None,
                       po_date=date(2024, 3, 1), expected_delivery_date=None,
                       total="500.00", status=POStatus.APPROVED,
                       service_scope=ServiceScope.NON_RECURRING):
    po = PurchaseOrder(
        org_id=org_id,
        po_number=po_number,
        vendor_id=vendor_id,
        site_id=site_id,
        client_id=client_id,
        po_date=po_date,
        expected_delivery_date=expected_delivery_date,
        total=Decimal(total) if total is not None else None,
        status=status,
        service_scope=service_scope
    )
    session.add(po)
    session.flush()

    for number, (description, amount) in enumerate(lines, start=1):
        session.add(POLineItem(
            org_id=org_id,
            po_id=po.id,
            line_number=number,
            description=description,
            amount=Decimal(amount)
        ))
    session.flush()
    return po


def add_invoice(session, lines=(), org_id=ORG_ID, vendor_id=VENDOR_ID, site_id=None,
                client_id=None, po_id=None, ocr_raw_text=None,
                invoice_date=INVOICE_DATE, total="600.00"):
    invoice = VendorInvoice(
        org_id=org_id,
        vendor_id=vendor_id,
        site_id=site_id,
        client_id=client_id,
        po_id=po_id,
        invoice_number="INV-1001",
        invoice_date=invoice_date,
        total=Decimal(total),
        ocr_raw_text=ocr_raw_text
    )
    session.add(invoice)
    session.flush()

    for number, (description, amount) in enumerate(lines, start=1):
        session.add(VendorLineItem(
            org_id=org_id,
            invoice_id=invoice.id,
            line_number=number,
            description=description,
            amount=Decimal(amount)
        ))
    session.flush()
    return invoice


# Two-line waste service invoice and the PO it was raised against
PO_LINES = [("Weekly Pickup", "500.00"), ("Haul 40 yd", "100.00")]
INVOICE_LINES = [("Weekly pickup", "500.00"), ("Haul 31 yd", "100.00")]
