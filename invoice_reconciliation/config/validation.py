"""
Reconciliation settings validation.

Checks administrator updates to a tenant's matching thresholds and reports
every problem found, not just the first one.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

import logging
logger = logging.getLogger(__name__)

UPDATABLE_SETTINGS = (
    'fuzzy_match_threshold',
    'price_tolerance_percentage',
    'auto_approve_exact_matches',
)


@dataclass
class ValidationResult:
    """Result of settings validation."""
    is_valid: bool
    errors: List[str]
    warnings: List[str]

    def add_error(self, message: str):
        """Add an error message."""
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        """Add a warning message."""
        self.warnings.append(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'is_valid': self.is_valid,
            'errors': self.errors,
            'warnings': self.warnings
        }


def _parse_percentage(value: Any):
    if isinstance(value, bool):
        raise ValueError("boolean is not a number")
    return Decimal(str(value))


class SettingsValidator:
    """Validates reconciliation settings changes."""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.SettingsValidator")

    def validate_settings_update(self, changes: Dict[str, Any]) -> ValidationResult:
        """
        Validate a partial settings update.

        Args:
            changes: Field name to new value

        Returns:
            ValidationResult with validation details
        """
        result = ValidationResult(is_valid=True, errors=[], warnings=[])

        for key in changes:
            if key not in UPDATABLE_SETTINGS:
                result.add_error(f"Unknown setting: {key}")

        if 'fuzzy_match_threshold' in changes:
            try:
                threshold = _parse_percentage(changes['fuzzy_match_threshold'])
                if not (Decimal('0') <= threshold <= Decimal('100')):
                    result.add_error("fuzzy_match_threshold must be between 0 and 100")
                elif threshold < Decimal('50'):
                    result.add_warning("fuzzy_match_threshold below 50 will accept weakly similar descriptions")
            except (InvalidOperation, ValueError, TypeError):
                result.add_error("fuzzy_match_threshold must be a number")

        if 'price_tolerance_percentage' in changes:
            try:
                tolerance = _parse_percentage(changes['price_tolerance_percentage'])
                if not (Decimal('0') <= tolerance <= Decimal('100')):
                    result.add_error("price_tolerance_percentage must be between 0 and 100")
                elif tolerance > Decimal('25'):
                    result.add_warning("price_tolerance_percentage above 25 hides large price differences")
            except (InvalidOperation, ValueError, TypeError):
                result.add_error("price_tolerance_percentage must be a number")

        if 'auto_approve_exact_matches' in changes:
            if not isinstance(changes['auto_approve_exact_matches'], bool):
                result.add_error("auto_approve_exact_matches must be true or false")

        if result.errors:
            self.logger.info(f"Settings update rejected: {result.errors}")
        return result
