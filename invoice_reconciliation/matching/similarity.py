"""
Description similarity scoring for line item matching.

Provides a normalized 0-100 similarity between two free-text line item
descriptions based on Levenshtein edit distance.
"""

from typing import Optional, Tuple

from invoice_reconciliation.config.app_config import ReconciliationConfig

import logging
logger = logging.getLogger(__name__)


class SimilarityScorer:
    """
    Scores how alike two line item descriptions are.

    Descriptions are lowercased and trimmed before comparison. Only the first
    ``max_length`` characters go through the edit distance table; the rest of
    each description is compared for equality, and a differing remainder
    counts every one of its characters as an edit.
    """

    def __init__(self, max_length: Optional[int] = None):
        """
        Initialize similarity scorer.

        Args:
            max_length: Maximum characters compared per description.
                If None, uses MAX_DESCRIPTION_LENGTH from configuration.
        """
        self.logger = logging.getLogger(f"{__name__}.SimilarityScorer")
        self.max_length = max_length if max_length is not None else ReconciliationConfig.MAX_DESCRIPTION_LENGTH

    def levenshtein_distance(self, s1: str, s2: str) -> int:
        """
        Calculate Levenshtein distance between two strings.

        Args:
            s1: First string
            s2: Second string

        Returns:
            Levenshtein distance (number of edits needed)
        """
        if not s1 and not s2:
            return 0
        if not s1:
            return len(s2)
        if not s2:
            return len(s1)

        rows = len(s1) + 1
        cols = len(s2) + 1
        matrix = [[0] * cols for _ in range(rows)]

        for i in range(rows):
            matrix[i][0] = i
        for j in range(cols):
            matrix[0][j] = j

        for i in range(1, rows):
            for j in range(1, cols):
                cost = 0 if s1[i-1] == s2[j-1] else 1

                matrix[i][j] = min(
                    matrix[i-1][j] + 1,      # deletion
                    matrix[i][j-1] + 1,      # insertion
                    matrix[i-1][j-1] + cost  # substitution
                )

        return matrix[rows-1][cols-1]

    def normalize(self, text: Optional[str]) -> str:
        """Lowercase and trim a description."""
        if not text:
            return ""
        return text.lower().strip()

    def split(self, text: str) -> Tuple[str, str]:
        """Split a normalized description into its compared head and remainder."""
        if self.max_length and len(text) > self.max_length:
            return text[:self.max_length], text[self.max_length:]
        return text, ""

    def similarity(self, s1: Optional[str], s2: Optional[str]) -> float:
        """
        Calculate description similarity as a percentage.

        Args:
            s1: First description
            s2: Second description

        Returns:
            Similarity from 0.0 (nothing in common) to 100.0 (identical
            after normalization). Two empty descriptions score 100.0.
        """
        normalized1 = self.normalize(s1)
        normalized2 = self.normalize(s2)

        if normalized1 == normalized2:
            return 100.0

        head1, rest1 = self.split(normalized1)
        head2, rest2 = self.split(normalized2)

        max_len = max(len(normalized1), len(normalized2))
        distance = self.levenshtein_distance(head1, head2)
        if rest1 != rest2:
            distance += max(len(rest1), len(rest2))
        score = (max_len - distance) / max_len * 100

        self.logger.debug(f"Similarity '{normalized1}' vs '{normalized2}': distance={distance}, score={score:.2f}")
        return max(0.0, min(100.0, score))


_default_scorer = SimilarityScorer()


def similarity(s1: Optional[str], s2: Optional[str]) -> float:
    """Similarity (0-100) of two descriptions using the default scorer."""
    return _default_scorer.similarity(s1, s2)
