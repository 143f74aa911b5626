"""Individual pre-scan detectors.

Every detector is a pure function from text (or file metadata) to a list of
:class:`~intentguard.core.findings.Finding` objects.  Detectors never raise on
odd input, never perform I/O and never return the raw matched value: samples
are masked (cards, SSNs) or truncated to a short prefix (keys, tokens).

Detectors run independently; :class:`~intentguard.core.pre_scan.PreScanEngine`
decides which ones apply to which text and derives the verdict.
"""

from __future__ import annotations

import math
import re
from collections import Counter
from typing import Iterable, Mapping

from intentguard.core.findings import Finding
from intentguard.core.patterns import (
    API_KEY_PATTERNS,
    CREDIT_CARD_PATTERNS,
    EMAIL_PATTERN,
    ENTROPY_TOKEN_PATTERN,
    ENV_LINE_PATTERN,
    PASSWORD_PATTERNS,
    PHONE_PATTERNS,
    PRIVATE_KEY_PATTERNS,
    RISKY_FILENAME_PATTERNS,
    SSN_PATTERN,
    UK_NINO_PATTERN,
)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

#: Emails / phone numbers below this count are ordinary business content.
BULK_PII_THRESHOLD = 10

#: Minimum ``KEY=value`` lines for a blob to look like a ``.env`` dump.
ENV_LINE_THRESHOLD = 3

#: Shannon entropy (bits/char) at or above which a token looks secret-like.
ENTROPY_THRESHOLD = 4.5
ENTROPY_MIN_TOKEN_LEN = 16
#: Longer runs are almost always encoded blobs, not credentials.
ENTROPY_MAX_TOKEN_LEN = 256
#: Presence is the signal; enumeration past this adds nothing.
MAX_ENTROPY_FINDINGS = 5

_SEPARATORS_RE = re.compile(r"[\s-]")
_ALPHA_ONLY_RE = re.compile(r"^[a-z]+$", re.IGNORECASE)
_CONSTANT_RE = re.compile(r"^[A-Z_]+$")

# ---------------------------------------------------------------------------
# Checksums and statistics
# ---------------------------------------------------------------------------


def luhn_check(number: str) -> bool:
    """Return ``True`` if *number* passes the Luhn mod-10 checksum.

    Spaces and hyphens are ignored.  Anything that is not 13-19 digits after
    stripping separators fails.
    """
    digits = _SEPARATORS_RE.sub("", number)
    if not digits.isdigit() or not 13 <= len(digits) <= 19:
        return False

    total = 0
    for i, ch in enumerate(reversed(digits)):
        n = int(ch)
        if i % 2 == 1:
            n *= 2
            if n > 9:
                n -= 9
        total += n
    return total % 10 == 0


def shannon_entropy(value: str) -> float:
    """Return the Shannon entropy of *value* in bits per character."""
    if not value:
        return 0.0
    length = len(value)
    return -sum(
        (count / length) * math.log2(count / length)
        for count in Counter(value).values()
    )


def mask_card_number(number: str) -> str:
    """``4111 1111 1111 1111`` -> ``4111****1111``."""
    digits = _SEPARATORS_RE.sub("", number)
    return f"{digits[:4]}****{digits[-4:]}"


def _prefix_sample(value: str, length: int = 8) -> str:
    return value[:length] + "..."


# ---------------------------------------------------------------------------
# PII detectors
# ---------------------------------------------------------------------------


def detect_credit_cards(text: str) -> list[Finding]:
    """Luhn-valid card numbers, one finding per distinct masked sample."""
    found: dict[str, Finding] = {}
    for entry in CREDIT_CARD_PATTERNS:
        for match in entry.regex.finditer(text):
            candidate = match.group()
            if not luhn_check(candidate):
                continue
            masked = mask_card_number(candidate)
            found.setdefault(masked, Finding(type="credit_card", severity="critical", sample=masked))
    return list(found.values())


def detect_ssn(text: str) -> list[Finding]:
    matches = SSN_PATTERN.findall(text)
    if not matches:
        return []
    return [
        Finding(
            type="ssn",
            severity="critical",
            count=len(matches),
            sample="XXX-XX-" + matches[0][-4:],
        )
    ]


def detect_uk_nino(text: str) -> list[Finding]:
    count = sum(1 for _ in UK_NINO_PATTERN.finditer(text))
    if count == 0:
        return []
    return [Finding(type="uk_nino", severity="critical", count=count)]


def detect_bulk_emails(text: str) -> list[Finding]:
    count = sum(1 for _ in EMAIL_PATTERN.finditer(text))
    if count < BULK_PII_THRESHOLD:
        return []
    return [Finding(type="bulk_emails", severity="high", count=count)]


def detect_bulk_phones(text: str) -> list[Finding]:
    count = sum(
        1 for entry in PHONE_PATTERNS for _ in entry.regex.finditer(text)
    )
    if count < BULK_PII_THRESHOLD:
        return []
    return [Finding(type="bulk_phones", severity="high", count=count)]


# ---------------------------------------------------------------------------
# Credential detectors
# ---------------------------------------------------------------------------


def detect_api_keys(text: str) -> list[Finding]:
    """Known-prefix tokens, deduplicated by their 8-character prefix sample."""
    found: dict[str, Finding] = {}
    for entry in API_KEY_PATTERNS:
        for match in entry.regex.finditer(text):
            sample = _prefix_sample(match.group())
            found.setdefault(sample, Finding(type="api_key", severity="critical", sample=sample))
    return list(found.values())


def detect_private_keys(text: str) -> list[Finding]:
    # Presence is enough; no need to count or locate every header.
    if any(pattern.search(text) for pattern in PRIVATE_KEY_PATTERNS):
        return [Finding(type="private_key", severity="critical")]
    return []


def detect_passwords(text: str) -> list[Finding]:
    """Collapsed to a single finding counted from the first matching pattern."""
    for pattern in PASSWORD_PATTERNS:
        matches = pattern.findall(text)
        if matches:
            return [
                Finding(
                    type="password_in_plaintext",
                    severity="critical",
                    count=len(matches),
                )
            ]
    return []


def detect_env_file(text: str) -> list[Finding]:
    count = len(ENV_LINE_PATTERN.findall(text))
    if count < ENV_LINE_THRESHOLD:
        return []
    return [Finding(type="env_file_content", severity="high", count=count)]


def _is_suppressed_token(token: str) -> bool:
    if _ALPHA_ONLY_RE.match(token):
        return True  # dictionary-like word
    if _CONSTANT_RE.match(token):
        return True  # ALL_CAPS constant name
    if token.startswith("/") or "\\" in token:
        return True  # path
    return False


def detect_high_entropy_tokens(text: str) -> list[Finding]:
    findings: list[Finding] = []
    for token in ENTROPY_TOKEN_PATTERN.findall(text):
        if len(token) < ENTROPY_MIN_TOKEN_LEN or len(token) > ENTROPY_MAX_TOKEN_LEN:
            continue
        entropy = shannon_entropy(token)
        if entropy < ENTROPY_THRESHOLD or _is_suppressed_token(token):
            continue
        findings.append(
            Finding(
                type="high_entropy_token",
                severity="medium",
                sample=_prefix_sample(token),
                entropy=round(entropy, 2),
            )
        )
        if len(findings) >= MAX_ENTROPY_FINDINGS:
            break
    return findings


# ---------------------------------------------------------------------------
# Metadata detector
# ---------------------------------------------------------------------------


def detect_risky_filenames(files: Iterable[Mapping[str, object] | object]) -> list[Finding]:
    """One ``risky_filename`` finding per attachment whose name looks sensitive.

    *files* may hold mappings with a ``"name"`` key or objects with a
    ``name`` attribute.
    """
    findings: list[Finding] = []
    for file in files:
        if isinstance(file, Mapping):
            name = file.get("name") or ""
        else:
            name = getattr(file, "name", None) or ""
        name = str(name)
        if any(pattern.match(name) for pattern in RISKY_FILENAME_PATTERNS):
            findings.append(Finding(type="risky_filename", severity="high", file_name=name))
    return findings


#: Detectors applied to extracted attachment text, in reporting order.
FILE_CONTENT_DETECTORS = (
    detect_credit_cards,
    detect_ssn,
    detect_uk_nino,
    detect_api_keys,
    detect_private_keys,
    detect_passwords,
    detect_env_file,
    detect_bulk_emails,
    detect_bulk_phones,
    detect_high_entropy_tokens,
)

#: Detectors applied to the message body (secrets pasted inline).
MESSAGE_TEXT_DETECTORS = (
    detect_api_keys,
    detect_private_keys,
    detect_passwords,
    detect_credit_cards,
    detect_ssn,
)
