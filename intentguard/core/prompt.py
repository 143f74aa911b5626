"""Classification prompt construction.

:func:`build_messages` assembles the single chat request sent per assessment:

* a system message with the verdict taxonomy, the audience rules (which depend
  on the strict-audience toggle) and the output schema;
* a user message whose content parts are the stated intent, the channel
  context section, one section per file tagged with its analysis method
  (plus the image itself for vision items), and optionally the pre-scan hint
  section, explicitly labelled as automated signals.

Hint rendering is a tunable (:class:`HintPolicy`); the service is never told to weight hints.
"""

from __future__ import annotations

from collections import Counter
from enum import Enum
from typing import Any, Sequence

from intentguard.core.channel_context import ChannelContext, render_context_section
from intentguard.core.findings import Finding
from intentguard.core.triage import METHOD_METADATA, METHOD_TEXT, METHOD_VISION, EvidenceItem


class HintPolicy(str, Enum):
    """How pre-scan hints are rendered into the prompt."""

    #: One line per finding.
    LIST = "list"
    #: One line per finding type with a cumulative count.
    AGGREGATE = "aggregate"


_STRICT_AUDIENCE_RULES = """Audience rules:
- Public channel: sensitive material (financial, personal data, credentials, health, legal) is a mismatch even when the message describes it accurately
- Shared or external channel: any internal material is a mismatch, since it leaves the organisation
- Large channel (50+ members): sensitive material raises your confidence
- Private channel or DM: lower risk, but still compare intent with content"""

_DEFAULT_AUDIENCE_RULES = """Audience rules:
- The primary check is intent against content. A file the sender describes accurately is a "match", public channel or not
- Public channel: flag only when intent and content disagree. Reflect audience size and visibility in contextRisk, never in the verdict of an accurate description
- Shared or external channel: internal or confidential material is a mismatch whatever the stated intent, since it leaves the organisation
- Credentials and secrets (API keys, passwords, tokens) are a mismatch in every channel
- Large channel (50+ members): raise contextRisk only; an accurate description stays a "match"
- Private channel or DM: lowest risk, but still compare intent with content"""

_MISMATCH_EXAMPLES = """Typical mismatches:
- says "demo slides", file holds real financial figures
- says "anonymised report", file holds raw customer emails or other personal data
- says "project mockup", file holds credentials or API keys"""

_STRICT_AUDIENCE_EXAMPLE = "- personal or financial data posted to a public or shared channel"
_DEFAULT_AUDIENCE_EXAMPLE = "- personal or financial data posted to a shared or external channel"

OUTPUT_SCHEMA = (
    '{"match":"match"|"mismatch"|"uncertain","confidence":0.0-1.0,'
    '"reasoning":"one sentence","contextRisk":"none"|"low"|"medium"|"high",'
    '"mismatchType":"none"|"intent_vs_content"|"wrong_audience"|"pii_exposure"|'
    '"credential_leak"|"sensitive_in_public"|"external_leak",'
    '"intentLabel":"short label for what the sender claims",'
    '"riskSummary":"one sentence in category terms, never quoting the message or file contents",'
    '"files":[{"name":"file name","finding":"one sentence",'
    '"classificationLabel":"financial_report"|"medical_record"|"credentials"|"pii_document"|'
    '"legal_document"|"internal_strategy"|"source_code"|"general_document"|'
    '"image_screenshot"|"unknown"}]}'
)


def system_prompt(strict_audience_blocking: bool = False) -> str:
    if strict_audience_blocking:
        audience_rules, audience_example = _STRICT_AUDIENCE_RULES, _STRICT_AUDIENCE_EXAMPLE
    else:
        audience_rules, audience_example = _DEFAULT_AUDIENCE_RULES, _DEFAULT_AUDIENCE_EXAMPLE
    return f"""You are IntentGuard, a data loss prevention reviewer for files shared in chat.
For every message compare:
1. Intent: what the sender says the files are
2. Content: what the files actually contain
3. Context: whether the channel and its audience are appropriate for that content

Answer with one verdict:
- "match": the content agrees with the stated intent and suits the channel
- "mismatch": the content contradicts the intent, or sensitive data is going to the wrong audience
- "uncertain": the evidence does not support a confident call

{_MISMATCH_EXAMPLES}
{audience_example}

{audience_rules}

General rules:
- Vague messages such as "fyi" or "check this out" lean towards "match"
- Flag only clear mismatches; borderline cases are "match" or "uncertain"
- With several files, one clear mismatch makes the whole message a "mismatch"
- Files with extracted text support high-confidence judgements
- Files described by metadata only (name, type, size) warrant lower confidence

Reply with JSON only, shaped as:
{OUTPUT_SCHEMA}"""


def _file_header(item: EvidenceItem) -> str:
    method = item.method
    if item.method == METHOD_METADATA and item.note:
        method = f"{item.method} ({item.note})"
    return f"### File: {item.name} ({item.mimetype}, {item.size} bytes) [analyzed via: {method}]"


def render_file_parts(item: EvidenceItem) -> list[dict[str, Any]]:
    """Content parts describing one evidence item."""
    if item.method == METHOD_VISION and item.base64_image:
        return [
            {"type": "text", "text": _file_header(item)},
            {
                "type": "image_url",
                "image_url": {
                    "url": f"data:{item.mimetype};base64,{item.base64_image}",
                    "detail": "low",
                },
            },
        ]
    if item.method == METHOD_TEXT and item.extracted_text:
        return [
            {
                "type": "text",
                "text": f"{_file_header(item)}\nExtracted text:\n{item.extracted_text}",
            }
        ]
    return [{"type": "text", "text": _file_header(item)}]


def render_hint_lines(hints: Sequence[Finding], policy: str = HintPolicy.LIST) -> list[str]:
    """One line per finding, or one line per finding type when aggregating."""
    if policy == HintPolicy.AGGREGATE:
        totals: Counter[str] = Counter()
        files: dict[str, set[str]] = {}
        severities: dict[str, str] = {}
        for hint in hints:
            totals[hint.type] += hint.count or 1
            if hint.file_name:
                files.setdefault(hint.type, set()).add(hint.file_name)
            severities.setdefault(hint.type, hint.severity)
        lines = []
        for finding_type, total in totals.items():
            line = f"- {finding_type} ({total} found)"
            if finding_type in files:
                line += f" in {', '.join(sorted(files[finding_type]))}"
            lines.append(f"{line} [{severities[finding_type]}]")
        return lines

    lines = []
    for hint in hints:
        parts = [f"- {hint.type}"]
        if hint.count:
            parts.append(f"({hint.count} found)")
        if hint.file_name:
            parts.append(f"in {hint.file_name}")
        parts.append(f"[{hint.severity}]")
        lines.append(" ".join(parts))
    return lines


def render_hint_section(hints: Sequence[Finding], policy: str = HintPolicy.LIST) -> str:
    return (
        "\n## Pre-scan signals (automated pattern detection)\n"
        + "\n".join(render_hint_lines(hints, policy))
        + "\nNote: These are automated signals, not a verdict. "
        "Use them as hints alongside your own analysis."
    )


def build_messages(
    message_text: str,
    evidence: Sequence[EvidenceItem],
    context: ChannelContext,
    *,
    strict_audience_blocking: bool = False,
    hints: Sequence[Finding] = (),
    hint_policy: str = HintPolicy.LIST,
) -> list[dict[str, Any]]:
    """Build the system + user chat messages for one assessment."""
    content: list[dict[str, Any]] = [
        {
            "type": "text",
            "text": (
                f'## Stated intent (message text)\n"{message_text}"\n\n'
                f"## Channel context\n{render_context_section(context)}\n\n"
                "## Attached files"
            ),
        }
    ]
    for item in evidence:
        content.extend(render_file_parts(item))
    if hints:
        content.append({"type": "text", "text": render_hint_section(hints, hint_policy)})

    return [
        {"role": "system", "content": system_prompt(strict_audience_blocking)},
        {"role": "user", "content": content},
    ]
