"""
Unit tests for per-tenant reconciliation settings and their validation.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from invoice_reconciliation.config import SettingsProvider, SettingsValidator
from invoice_reconciliation.models import MatchingSettings, ValidationError
from invoice_reconciliation.storage import ReconciliationSettings, session_scope

from sample_data import ORG_ID, OTHER_ORG_ID, make_session_factory


class TestSettingsValidator:
    """Test cases for settings update validation."""

    def setup_method(self):
        """Setup test environment."""
        self.validator = SettingsValidator()

    def test_valid_update(self):
        """Test a valid settings update passes validation."""
        result = self.validator.validate_settings_update({
            'fuzzy_match_threshold': 85,
            'price_tolerance_percentage': '2.5',
            'auto_approve_exact_matches': True
        })

        assert result.is_valid is True
        assert result.errors == []

    def test_out_of_range_values(self):
        """Test thresholds outside 0-100 are errors."""
        result = self.validator.validate_settings_update({
            'fuzzy_match_threshold': 150,
            'price_tolerance_percentage': -1
        })

        assert result.is_valid is False
        assert len(result.errors) == 2

    def test_wrong_types(self):
        """Test booleans are not numbers and numbers are not booleans."""
        result = self.validator.validate_settings_update({
            'fuzzy_match_threshold': True,
            'auto_approve_exact_matches': 'yes'
        })

        assert result.is_valid is False
        assert "fuzzy_match_threshold must be a number" in result.errors
        assert "auto_approve_exact_matches must be true or false" in result.errors

    def test_unknown_setting(self):
        """Test unknown settings are rejected."""
        result = self.validator.validate_settings_update({'match_everything': True})

        assert result.is_valid is False
        assert "Unknown setting: match_everything" in result.errors

    def test_warnings(self):
        """Test permissive but valid values produce warnings."""
        result = self.validator.validate_settings_update({
            'fuzzy_match_threshold': 40,
            'price_tolerance_percentage': 30
        })

        assert result.is_valid is True
        assert len(result.warnings) == 2
        assert result.to_dict()['warnings'] == result.warnings


class TestSettingsProvider:
    """Test cases for SettingsProvider class."""

    def setup_method(self):
        """Setup test environment."""
        self.session_factory = make_session_factory()
        self.provider = SettingsProvider()

    def count_rows(self, session, org_id):
        return session.execute(
            select(func.count()).select_from(ReconciliationSettings)
            .where(ReconciliationSettings.org_id == org_id)
        ).scalar_one()

    def test_defaults_created_on_first_access(self):
        """Test a missing row is created with the default thresholds."""
        with session_scope(self.session_factory) as session:
            settings = self.provider.get_matching_settings(session, ORG_ID)

        assert settings.fuzzy_match_threshold == Decimal("80")
        assert settings.price_tolerance_percentage == Decimal("5")
        assert settings.auto_approve_exact_matches is False

    def test_single_row_per_tenant(self):
        """Test repeated access never duplicates the row."""
        for _ in range(3):
            with session_scope(self.session_factory) as session:
                self.provider.get_settings(session, ORG_ID)

        with session_scope(self.session_factory) as session:
            assert self.count_rows(session, ORG_ID) == 1

    def test_tenants_isolated(self):
        """Test each organization gets its own settings."""
        with session_scope(self.session_factory) as session:
            self.provider.update_settings(session, ORG_ID, {'fuzzy_match_threshold': 90})

        with session_scope(self.session_factory) as session:
            other = self.provider.get_matching_settings(session, OTHER_ORG_ID)

        assert other.fuzzy_match_threshold == Decimal("80")

    def test_custom_defaults(self):
        """Test provider defaults override the configured ones."""
        provider = SettingsProvider(defaults=MatchingSettings(
            fuzzy_match_threshold=Decimal("70"),
            price_tolerance_percentage=Decimal("2"),
            auto_approve_exact_matches=True
        ))

        with session_scope(self.session_factory) as session:
            settings = provider.get_matching_settings(session, ORG_ID)

        assert settings.fuzzy_match_threshold == Decimal("70")
        assert settings.auto_approve_exact_matches is True

    def test_update_settings(self):
        """Test a partial update persists and None values are ignored."""
        with session_scope(self.session_factory) as session:
            self.provider.update_settings(session, ORG_ID, {
                'fuzzy_match_threshold': 90,
                'auto_approve_exact_matches': True,
                'price_tolerance_percentage': None
            })

        with session_scope(self.session_factory) as session:
            settings = self.provider.get_matching_settings(session, ORG_ID)

        assert settings.fuzzy_match_threshold == Decimal("90")
        assert settings.price_tolerance_percentage == Decimal("5")
        assert settings.auto_approve_exact_matches is True

    def test_invalid_update_rejected(self):
        """Test invalid updates raise ValidationError and change nothing."""
        with pytest.raises(ValidationError) as exc_info:
            with session_scope(self.session_factory) as session:
                self.provider.update_settings(session, ORG_ID, {'fuzzy_match_threshold': 101})

        assert exc_info.value.code == "VALIDATION_ERROR"
        assert exc_info.value.details == ["fuzzy_match_threshold must be between 0 and 100"]

        with session_scope(self.session_factory) as session:
            assert self.count_rows(session, ORG_ID) == 0
