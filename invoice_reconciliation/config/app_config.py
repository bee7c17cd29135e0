"""
Reconciliation Engine Configuration Settings
"""
import os
from decimal import Decimal
from typing import Dict, Any


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class ReconciliationConfig:
    """Environment driven configuration class"""

    # Database
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///invoice_reconciliation.db')
    SQL_ECHO = _env_bool('SQL_ECHO')

    # Defaults written into a tenant's settings row on first access
    DEFAULT_FUZZY_MATCH_THRESHOLD = Decimal(os.getenv('DEFAULT_FUZZY_MATCH_THRESHOLD', '80'))
    DEFAULT_PRICE_TOLERANCE_PERCENTAGE = Decimal(os.getenv('DEFAULT_PRICE_TOLERANCE_PERCENTAGE', '5'))
    DEFAULT_AUTO_APPROVE_EXACT_MATCHES = _env_bool('DEFAULT_AUTO_APPROVE_EXACT_MATCHES')

    # Candidate PO search window (± days around the invoice date)
    PO_DATE_WINDOW_DAYS = int(os.getenv('PO_DATE_WINDOW_DAYS', '45'))

    # Descriptions are truncated to this many characters before edit distance
    MAX_DESCRIPTION_LENGTH = int(os.getenv('MAX_DESCRIPTION_LENGTH', '500'))

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

    @classmethod
    def get_config_summary(cls) -> Dict[str, Any]:
        """Get current configuration (database credentials masked)"""
        database_url = cls.DATABASE_URL
        if '@' in database_url:
            scheme, _, host_part = database_url.partition('://')
            database_url = f"{scheme}://***@{host_part.split('@', 1)[1]}"

        return {
            'database_url': database_url,
            'sql_echo': cls.SQL_ECHO,
            'default_fuzzy_match_threshold': float(cls.DEFAULT_FUZZY_MATCH_THRESHOLD),
            'default_price_tolerance_percentage': float(cls.DEFAULT_PRICE_TOLERANCE_PERCENTAGE),
            'default_auto_approve_exact_matches': cls.DEFAULT_AUTO_APPROVE_EXACT_MATCHES,
            'po_date_window_days': cls.PO_DATE_WINDOW_DAYS,
            'max_description_length': cls.MAX_DESCRIPTION_LENGTH,
            'log_level': cls.LOG_LEVEL,
        }
