"""Built-in personal-data regex pattern library for the IntentGuard pre-scan.

This module provides the pre-compiled regular expressions used by the PII
detectors in :mod:`intentguard.core.detectors`:

* Payment card numbers (Visa, Mastercard, Amex, Discover)
* US Social Security numbers
* UK National Insurance numbers
* Email addresses
* Telephone numbers (US/Canada and international shapes)

Card patterns only locate *candidates*; the detector applies the Luhn
checksum before a match becomes a finding.  No regex compilation occurs at
scan time: every pattern is compiled once at import.

Usage::

    from intentguard.core.patterns.pii_patterns import CREDIT_CARD_PATTERNS

    for entry in CREDIT_CARD_PATTERNS:
        for match in entry.regex.finditer(text):
            print(entry.name, match.group())
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Raw pattern strings
# ---------------------------------------------------------------------------

# Payment cards.  Groups of four digits may be separated by a single space or
# hyphen, which is how card numbers are usually pasted into documents.
_VISA = r"\b4[0-9]{3}[\s-]?[0-9]{4}[\s-]?[0-9]{4}[\s-]?[0-9]{4}\b"
_MASTERCARD = r"\b5[1-5][0-9]{2}[\s-]?[0-9]{4}[\s-]?[0-9]{4}[\s-]?[0-9]{4}\b"
# Amex is 15 digits printed 4-6-5.
_AMEX = r"\b3[47][0-9]{2}[\s-]?[0-9]{6}[\s-]?[0-9]{5}\b"
_DISCOVER = r"\b6(?:011|5[0-9]{2})[\s-]?[0-9]{4}[\s-]?[0-9]{4}[\s-]?[0-9]{4}\b"

# US Social Security number, dashed form only.  Undashed nine-digit runs are
# far too common in business documents to be a useful signal.
_SSN = r"\b\d{3}-\d{2}-\d{4}\b"

# UK National Insurance number
# Two prefix letters (D, F, I, Q, U, V never used) + six digits + suffix A-D,
# optionally spaced into pairs as printed on the card.
_UK_NINO = r"\b[A-CEGHJ-PR-TW-Z]{2}\s?\d{2}\s?\d{2}\s?\d{2}\s?[A-D]\b"

# Email address.  High recall over RFC 5321 precision.
_EMAIL = r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"

# Telephone numbers.  Both shapes are counted and summed; a number may be
# counted by both, which only matters for the bulk threshold.
_PHONE_NANP = r"\b\+?1?[-.\s]?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"
_PHONE_INTL = r"\b\+?[1-9]\d{0,2}[-.\s]?\d{2,4}[-.\s]?\d{3,4}[-.\s]?\d{3,4}\b"

# ---------------------------------------------------------------------------
# PatternEntry dataclass
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PatternEntry:
    """An immutable, pre-compiled detection pattern.

    Attributes:
        name: Identifier of the pattern (card network, token provider, ...).
        regex: Pre-compiled regular expression.
    """

    name: str
    regex: re.Pattern  # type: ignore[type-arg]


# ---------------------------------------------------------------------------
# Compiled catalogues
# ---------------------------------------------------------------------------

CREDIT_CARD_PATTERNS: tuple[PatternEntry, ...] = (
    PatternEntry("visa", re.compile(_VISA)),
    PatternEntry("mastercard", re.compile(_MASTERCARD)),
    PatternEntry("amex", re.compile(_AMEX)),
    PatternEntry("discover", re.compile(_DISCOVER)),
)

SSN_PATTERN: re.Pattern = re.compile(_SSN)  # type: ignore[type-arg]

UK_NINO_PATTERN: re.Pattern = re.compile(_UK_NINO, re.IGNORECASE)  # type: ignore[type-arg]

EMAIL_PATTERN: re.Pattern = re.compile(_EMAIL)  # type: ignore[type-arg]

PHONE_PATTERNS: tuple[PatternEntry, ...] = (
    PatternEntry("nanp", re.compile(_PHONE_NANP)),
    PatternEntry("international", re.compile(_PHONE_INTL)),
)
