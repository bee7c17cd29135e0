"""
Per-tenant reconciliation settings.

Each organization has exactly one settings row. It is created with the
configured defaults the first time the tenant is reconciled, using an
insert that tolerates a concurrent first access instead of duplicating rows.
"""

from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from invoice_reconciliation.models import MatchingSettings, ValidationError
from invoice_reconciliation.storage.schema import ReconciliationSettings
from .app_config import ReconciliationConfig
from .validation import SettingsValidator

import logging
logger = logging.getLogger(__name__)


def default_matching_settings() -> MatchingSettings:
    """Defaults from application configuration."""
    return MatchingSettings(
        fuzzy_match_threshold=ReconciliationConfig.DEFAULT_FUZZY_MATCH_THRESHOLD,
        price_tolerance_percentage=ReconciliationConfig.DEFAULT_PRICE_TOLERANCE_PERCENTAGE,
        auto_approve_exact_matches=ReconciliationConfig.DEFAULT_AUTO_APPROVE_EXACT_MATCHES
    )


class SettingsProvider:
    """
    Reads and updates reconciliation settings for a tenant.

    Works inside the caller's session so settings are read in the same unit
    of work as the reconciliation run that uses them.
    """

    def __init__(self, defaults: Optional[MatchingSettings] = None):
        """
        Initialize settings provider.

        Args:
            defaults: Values for newly created settings rows. If None, uses
                the configured defaults.
        """
        self.logger = logging.getLogger(f"{__name__}.SettingsProvider")
        self.defaults = defaults or default_matching_settings()
        self.validator = SettingsValidator()

    def _find(self, session: Session, org_id: str) -> Optional[ReconciliationSettings]:
        return session.execute(
            select(ReconciliationSettings).where(ReconciliationSettings.org_id == org_id)
        ).scalar_one_or_none()

    def _default_values(self, org_id: str) -> Dict[str, Any]:
        return {
            'org_id': org_id,
            'fuzzy_match_threshold': self.defaults.fuzzy_match_threshold,
            'price_tolerance_percentage': self.defaults.price_tolerance_percentage,
            'auto_approve_exact_matches': self.defaults.auto_approve_exact_matches,
        }

    def _insert_if_missing(self, session: Session, org_id: str) -> None:
        dialect = session.get_bind().dialect.name

        if dialect in ('postgresql', 'sqlite'):
            if dialect == 'postgresql':
                from sqlalchemy.dialects.postgresql import insert
            else:
                from sqlalchemy.dialects.sqlite import insert
            statement = insert(ReconciliationSettings).values(
                **self._default_values(org_id)
            ).on_conflict_do_nothing(index_elements=['org_id'])
            session.execute(statement)
            return

        # Other backends: unique constraint protected insert in a savepoint
        try:
            with session.begin_nested():
                session.add(ReconciliationSettings(**self._default_values(org_id)))
        except IntegrityError:
            self.logger.warning(f"Settings for org {org_id} created concurrently, reading existing row")

    def get_settings(self, session: Session, org_id: str) -> ReconciliationSettings:
        """
        Get the tenant's settings row, creating it with defaults if absent.

        Args:
            session: Open database session
            org_id: Tenant id

        Returns:
            ReconciliationSettings row
        """
        settings = self._find(session, org_id)
        if settings is not None:
            return settings

        self._insert_if_missing(session, org_id)
        settings = self._find(session, org_id)
        if settings is None:
            raise RuntimeError(f"Settings row for org {org_id} missing after insert")

        self.logger.info(f"Created default reconciliation settings for org {org_id}")
        return settings

    def get_matching_settings(self, session: Session, org_id: str) -> MatchingSettings:
        """Tenant thresholds as a plain MatchingSettings value."""
        return self.get_settings(session, org_id).to_matching_settings()

    def update_settings(self, session: Session, org_id: str,
                        changes: Dict[str, Any]) -> ReconciliationSettings:
        """
        Apply an administrator's partial settings update.

        Args:
            session: Open database session
            org_id: Tenant id
            changes: Field name to new value; None values are ignored

        Returns:
            Updated ReconciliationSettings row

        Raises:
            ValidationError: If any value is unknown or out of range
        """
        changes = {key: value for key, value in (changes or {}).items() if value is not None}

        validation = self.validator.validate_settings_update(changes)
        if not validation.is_valid:
            raise ValidationError("Invalid reconciliation settings", details=validation.errors)
        for warning in validation.warnings:
            self.logger.warning(f"Settings update for org {org_id}: {warning}")

        settings = self.get_settings(session, org_id)
        if not changes:
            return settings

        for key, value in changes.items():
            if key == 'auto_approve_exact_matches':
                setattr(settings, key, value)
            else:
                setattr(settings, key, Decimal(str(value)))

        session.flush()
        self.logger.info(f"Updated reconciliation settings for org {org_id}: {sorted(changes)}")
        return settings
