"""Pattern library for the IntentGuard pre-scan.

Provides the built-in personal-data and credential pattern sets.
"""

from intentguard.core.patterns.pii_patterns import (
    CREDIT_CARD_PATTERNS,
    EMAIL_PATTERN,
    PHONE_PATTERNS,
    SSN_PATTERN,
    UK_NINO_PATTERN,
    PatternEntry,
)
from intentguard.core.patterns.secret_patterns import (
    API_KEY_PATTERNS,
    ENTROPY_TOKEN_PATTERN,
    ENV_LINE_PATTERN,
    PASSWORD_PATTERNS,
    PRIVATE_KEY_PATTERNS,
    RISKY_FILENAME_PATTERNS,
)

__all__ = [
    "API_KEY_PATTERNS",
    "CREDIT_CARD_PATTERNS",
    "EMAIL_PATTERN",
    "ENTROPY_TOKEN_PATTERN",
    "ENV_LINE_PATTERN",
    "PASSWORD_PATTERNS",
    "PHONE_PATTERNS",
    "PRIVATE_KEY_PATTERNS",
    "RISKY_FILENAME_PATTERNS",
    "SSN_PATTERN",
    "UK_NINO_PATTERN",
    "PatternEntry",
]
