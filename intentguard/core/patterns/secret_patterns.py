"""Built-in credential and secret pattern library for the IntentGuard pre-scan.

Covers the credential-class detectors:

* Provider API keys and tokens recognisable by a fixed prefix
* PEM / OpenSSH / PGP private key headers
* ``password=...`` style assignments
* ``.env``-shaped ``UPPER_CASE=value`` lines
* Candidate tokens for the Shannon-entropy check
* Risky filenames (matched against attachment metadata only)

All patterns are compiled at import time.
"""

from __future__ import annotations

import re

from intentguard.core.patterns.pii_patterns import PatternEntry

# ---------------------------------------------------------------------------
# API keys and tokens (known prefixes)
# ---------------------------------------------------------------------------

_API_KEY_DEFINITIONS: list[tuple[str, str]] = [
    ("openai", r"\bsk-[a-zA-Z0-9]{20,}\b"),
    ("openai_project", r"\bsk-proj-[a-zA-Z0-9_-]{20,}\b"),
    ("aws_access_key", r"\bAKIA[0-9A-Z]{16}\b"),
    ("github_pat", r"\bghp_[a-zA-Z0-9]{36,}\b"),
    ("github_oauth", r"\bgho_[a-zA-Z0-9]{36,}\b"),
    ("github_app", r"\bghs_[a-zA-Z0-9]{36,}\b"),
    ("slack", r"\bxox[bpras]-[a-zA-Z0-9-]{10,}\b"),
    ("gitlab_pat", r"\bglpat-[a-zA-Z0-9_-]{20,}\b"),
    ("npm", r"\bnpm_[a-zA-Z0-9]{36,}\b"),
    ("sendgrid", r"\bSG\.[a-zA-Z0-9_-]{22}\.[a-zA-Z0-9_-]{43}\b"),
    ("heroku", r"\bheroku-[a-f0-9-]{36}\b"),
    ("stripe_restricted", r"\brk_live_[a-zA-Z0-9]{24,}\b"),
    ("stripe_secret", r"\bsk_live_[a-zA-Z0-9]{24,}\b"),
    ("stripe_publishable", r"\bpk_live_[a-zA-Z0-9]{24,}\b"),
    ("jwt", r"\beyJ[a-zA-Z0-9_-]{10,}\.eyJ[a-zA-Z0-9_-]{10,}\.[a-zA-Z0-9_-]{10,}\b"),
]

API_KEY_PATTERNS: tuple[PatternEntry, ...] = tuple(
    PatternEntry(name, re.compile(raw)) for name, raw in _API_KEY_DEFINITIONS
)

# ---------------------------------------------------------------------------
# Private keys
# ---------------------------------------------------------------------------

PRIVATE_KEY_PATTERNS: tuple[re.Pattern, ...] = (  # type: ignore[type-arg]
    re.compile(r"-----BEGIN\s+(RSA\s+)?PRIVATE\s+KEY-----"),
    re.compile(r"-----BEGIN\s+OPENSSH\s+PRIVATE\s+KEY-----"),
    re.compile(r"-----BEGIN\s+PGP\s+PRIVATE\s+KEY\s+BLOCK-----"),
    re.compile(r"-----BEGIN\s+EC\s+PRIVATE\s+KEY-----"),
    re.compile(r"-----BEGIN\s+DSA\s+PRIVATE\s+KEY-----"),
)

# ---------------------------------------------------------------------------
# Plaintext password assignments
# ---------------------------------------------------------------------------

PASSWORD_PATTERNS: tuple[re.Pattern, ...] = (  # type: ignore[type-arg]
    re.compile(r"(?:password|passwd|pwd)\s*[:=]\s*\S+", re.IGNORECASE),
    re.compile(r"(?:secret|token|api_?key)\s*[:=]\s*\S+", re.IGNORECASE),
    re.compile(
        r"(?:DB_PASSWORD|DATABASE_PASSWORD|MYSQL_PASSWORD|POSTGRES_PASSWORD)\s*[:=]\s*\S+",
        re.IGNORECASE,
    ),
)

# ---------------------------------------------------------------------------
# .env content shape and entropy candidates
# ---------------------------------------------------------------------------

# KEY=value lines, upper-case convention.  Case-sensitive on purpose.
ENV_LINE_PATTERN: re.Pattern = re.compile(r"^[A-Z_]{2,}=.+$", re.MULTILINE)  # type: ignore[type-arg]

ENTROPY_TOKEN_PATTERN: re.Pattern = re.compile(r"[A-Za-z0-9_+/=-]{16,}")  # type: ignore[type-arg]

# ---------------------------------------------------------------------------
# Risky filenames
# ---------------------------------------------------------------------------

_RISKY_FILENAMES: list[str] = [
    r"^\.env(\.local|\.prod|\.dev|\.staging)?$",
    r"^passwords?\.(txt|csv|xlsx?|json)$",
    r"^credentials?\.(txt|csv|json|yaml|yml)$",
    r"^secrets?\.(txt|csv|json|yaml|yml)$",
    r"^id_rsa(\.pub)?$",
    r"^id_ed25519(\.pub)?$",
    r"^.*\.pem$",
    r"^.*\.key$",
    r"^.*\.p12$",
    r"^.*\.pfx$",
    r"^.*\.keystore$",
    r"^tokens?\.(txt|json)$",
    r"^api[_-]?keys?\.(txt|json)$",
    r"^private[_-]?key\..+$",
    r"^service[_-]?account.*\.json$",
    r"^gcloud.*\.json$",
    r"^kubeconfig$",
    r"^\.npmrc$",
    r"^\.pypirc$",
    r"^\.netrc$",
    r"^\.pgpass$",
    r"^\.git-credentials$",
    r"^wp-config\.php$",
]

RISKY_FILENAME_PATTERNS: tuple[re.Pattern, ...] = tuple(  # type: ignore[type-arg]
    re.compile(raw, re.IGNORECASE) for raw in _RISKY_FILENAMES
)
