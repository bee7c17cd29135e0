"""
HTTP surface of the reconciliation engine.

A Flask blueprint exposing auto-match, match review and settings endpoints
under ``/api/invoice-matching``. Authentication happens upstream; the tenant
and user arrive in the ``X-Org-Id`` and ``X-User-Id`` headers.
"""

from typing import Any, Optional

from flask import Blueprint, Flask, current_app, g, jsonify, request
from sqlalchemy.orm import sessionmaker
from werkzeug.exceptions import HTTPException

from invoice_reconciliation.config.app_config import ReconciliationConfig
from invoice_reconciliation.models import (
    DiscrepancyStatus, ReconciliationError, ValidationError
)
from invoice_reconciliation.orchestrator import ReconciliationService
from invoice_reconciliation.storage.database import (
    create_db_engine, create_session_factory, init_db
)

import logging
logger = logging.getLogger(__name__)

matching_bp = Blueprint('invoice_matching', __name__, url_prefix='/api/invoice-matching')


def success(data: Any, status: int = 200):
    return jsonify({'success': True, 'data': data}), status


def failure(code: str, message: str, status: int, details: Optional[list] = None):
    error = {'code': code, 'message': message}
    if details:
        error['details'] = details
    return jsonify({'success': False, 'error': error}), status


def get_service() -> ReconciliationService:
    return current_app.extensions['reconciliation_service']


def _json_body() -> dict:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


@matching_bp.before_request
def load_tenant():
    org_id = request.headers.get('X-Org-Id', '').strip()
    if not org_id:
        return failure('UNAUTHORIZED', 'Missing tenant context', 401)
    g.org_id = org_id
    g.user_id = request.headers.get('X-User-Id', '').strip() or None


@matching_bp.route('/auto-match', methods=['POST'])
def auto_match():
    body = _json_body()
    vendor_invoice_id = str(body.get('vendor_invoice_id') or '').strip()
    if not vendor_invoice_id:
        raise ValidationError("Validation failed", details=["Vendor invoice ID is required"])

    results = get_service().auto_match_invoice(g.org_id, vendor_invoice_id, body.get('po_id') or None)
    return success({'match_results': [result.to_dict() for result in results]})


@matching_bp.route('/records/<invoice_id>', methods=['GET'])
def get_matching_records(invoice_id):
    include_superseded = request.args.get('include_superseded', 'false').lower() == 'true'
    records = get_service().get_matching_records(g.org_id, invoice_id, include_superseded)
    return success({'matching_records': records})


def _require_user() -> str:
    if not g.user_id:
        raise ValidationError("Validation failed", details=["X-User-Id header is required"])
    return g.user_id


@matching_bp.route('/records/<match_id>/approve', methods=['POST'])
def approve_match(match_id):
    record = get_service().approve_match(g.org_id, match_id, _require_user())
    return success({'matching_record': record})


@matching_bp.route('/records/<match_id>/reject', methods=['POST'])
def reject_match(match_id):
    reason = _json_body().get('reason')
    record = get_service().reject_match(g.org_id, match_id, _require_user(), reason)
    return success({'matching_record': record})


@matching_bp.route('/manual-match', methods=['POST'])
def manual_match():
    body = _json_body()
    errors = []
    if not body.get('vendor_line_item_id'):
        errors.append("Vendor line item ID is required")
    if not body.get('po_line_item_id'):
        errors.append("PO line item ID is required")
    if errors:
        raise ValidationError("Validation failed", details=errors)

    record = get_service().manual_match(
        g.org_id, body['vendor_line_item_id'], body['po_line_item_id'],
        _require_user(), body.get('notes')
    )
    return success({'matching_record': record}, 201)


@matching_bp.route('/discrepancies/<invoice_id>', methods=['GET'])
def get_discrepancies(invoice_id):
    status = request.args.get('status')
    try:
        status_filter = DiscrepancyStatus(status) if status else None
    except ValueError:
        raise ValidationError("Validation failed", details=[f"Unknown discrepancy status: {status}"])

    discrepancies = get_service().get_discrepancies(g.org_id, invoice_id, status_filter)
    return success({'discrepancies': discrepancies})


@matching_bp.route('/settings', methods=['GET'])
def get_settings():
    return success({'settings': get_service().get_settings(g.org_id)})


@matching_bp.route('/settings', methods=['PUT'])
def update_settings():
    settings = get_service().update_settings(g.org_id, _json_body())
    return success({'settings': settings})


@matching_bp.errorhandler(ReconciliationError)
def handle_reconciliation_error(error: ReconciliationError):
    if error.status_code >= 500:
        logger.error(f"Reconciliation error {error.code}: {error.message}", exc_info=True)
    else:
        logger.info(f"Request failed with {error.code}: {error.message}")
    return failure(error.code, error.message, error.status_code, error.details)


@matching_bp.errorhandler(Exception)
def handle_unexpected_error(error: Exception):
    if isinstance(error, HTTPException):
        return failure(error.name.upper().replace(' ', '_'), error.description, error.code)
    logger.error(f"Unexpected error handling {request.method} {request.path}: {error}", exc_info=True)
    return failure('INTERNAL_ERROR', 'An unexpected error occurred', 500)


def create_app(database_url: Optional[str] = None,
               session_factory: Optional[sessionmaker] = None) -> Flask:
    """
    Create the Flask application.

    Args:
        database_url: Database URL. If None, uses DATABASE_URL from configuration.
        session_factory: Ready session factory (tests); skips engine creation.

    Returns:
        Configured Flask app
    """
    app = Flask(__name__)

    if session_factory is None:
        engine = create_db_engine(database_url)
        init_db(engine)
        session_factory = create_session_factory(engine)

    app.extensions['reconciliation_service'] = ReconciliationService(session_factory)
    app.register_blueprint(matching_bp)

    @app.route('/health', methods=['GET'])
    def health_check():
        return jsonify({'status': 'healthy', 'config': ReconciliationConfig.get_config_summary()}), 200

    logger.info("Reconciliation API initialized")
    return app
