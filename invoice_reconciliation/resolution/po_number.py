"""
PO number extraction from raw invoice text.

Vendors print the purchase order reference in a handful of shapes:
``PO-2024-00031``, ``PO #12345``, ``Purchase Order #: PO-2024-00031``.
Every hit is normalized to uppercase with a ``PO-`` prefix so it can be
compared with stored PO numbers.
"""

import re
from typing import List, Optional

# Tried in order; a token must contain at least one digit
PO_NUMBER_PATTERNS = [
    re.compile(r'\bPO[\s-]?(\d{4})[\s-](\d{3,6})\b', re.IGNORECASE),
    re.compile(r'\bPurchase\s+Order\s*(?:#|No\.?|Number)?\s*:?\s*#?\s*'
               r'((?=[A-Z0-9-]*\d)[A-Z0-9][A-Z0-9-]*)', re.IGNORECASE),
    re.compile(r'\bP\.?O\.?\s*(?:#|No\.?|Number)\s*:?\s*'
               r'((?=[A-Z0-9-]*\d)[A-Z0-9][A-Z0-9-]*)', re.IGNORECASE),
]


def normalize_po_number(value: str) -> str:
    """
    Normalize a PO number: uppercase, trimmed, ``PO-`` prefixed.

    >>> normalize_po_number('po2024-00031')
    'PO-2024-00031'
    """
    normalized = value.strip().upper().rstrip('-.')
    if normalized.startswith('PO-'):
        return normalized
    if normalized.startswith('PO'):
        return 'PO-' + normalized[2:].lstrip(' -#')
    return 'PO-' + normalized.lstrip('-#')


def extract_po_numbers(text: Optional[str]) -> List[str]:
    """
    Extract every distinct PO number from raw text, most specific pattern first.

    Args:
        text: Raw OCR text of an invoice

    Returns:
        Normalized PO numbers in the order they should be looked up
    """
    if not text:
        return []

    found: List[str] = []
    for index, pattern in enumerate(PO_NUMBER_PATTERNS):
        for match in pattern.finditer(text):
            if index == 0:
                candidate = f"PO-{match.group(1)}-{match.group(2)}"
            else:
                candidate = normalize_po_number(match.group(1))
            if candidate not in found:
                found.append(candidate)
    return found


def extract_po_number(text: Optional[str]) -> Optional[str]:
    """First PO number found in the text, or None."""
    numbers = extract_po_numbers(text)
    return numbers[0] if numbers else None
