"""Pattern-based reference PII engine.

Detects common structured identifiers (emails, phone numbers, US SSNs,
payment card numbers, IPv4 addresses) in message text and swaps each
distinct value for a numbered placeholder such as ``<PII_EMAIL_1>``.
Restoration is a straight placeholder substitution.
"""

from __future__ import annotations

import logging
import re

from veilstream.providers.base import PIIEngine
from veilstream.schemas.chat import ChatCompletionRequest
from veilstream.schemas.pii import Detection, Findings

logger = logging.getLogger(__name__)

# Order matters: longer, more specific patterns run first so a card number
# is never partially claimed by the phone pattern.
_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("EMAIL", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")),
    ("CARD", re.compile(r"\b(?:\d[ -]?){12,15}\d\b")),
    ("SSN", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    ("PHONE", re.compile(r"(?<!\w)\+?\d{1,3}?[ .-]?\(?\d{3}\)?[ .-]\d{3}[ .-]\d{4}\b")),
    ("IPV4", re.compile(r"\b(?:(?:25[0-5]|2[0-4]\d|1?\d?\d)\.){3}(?:25[0-5]|2[0-4]\d|1?\d?\d)\b")),
)

_PLACEHOLDER_RE = re.compile(r"<PII_[A-Z0-9]+_\d+>")


class RegexPIIEngine(PIIEngine):
    """PII engine driven by regular expressions.

    Stateless between requests: placeholder numbering and the mapping
    table live only in the Findings returned by detect().
    """

    async def detect(self, request: ChatCompletionRequest) -> Detection:
        obfuscated = request.model_copy(deep=True)
        placeholders: dict[str, str] = {}  # original -> placeholder
        counters: dict[str, int] = {}
        occurrences = 0

        for message in obfuscated.messages:
            content = message.get("content")
            if isinstance(content, str):
                message["content"], found = _obfuscate(content, placeholders, counters)
                occurrences += found
            elif isinstance(content, list):
                # Multi-part content: only text parts are scanned
                for part in content:
                    if isinstance(part, dict) and isinstance(part.get("text"), str):
                        part["text"], found = _obfuscate(part["text"], placeholders, counters)
                        occurrences += found

        mapping = {placeholder: original for original, placeholder in placeholders.items()}
        logger.debug("Detected %d PII occurrence(s), %d distinct", occurrences, len(mapping))
        return Detection(
            findings=Findings(count=occurrences, mapping=mapping),
            request=obfuscated,
        )

    async def restore(self, content: str, findings: Findings) -> str:
        if not findings.mapping or not content:
            return content
        return _PLACEHOLDER_RE.sub(
            lambda m: findings.mapping.get(m.group(0), m.group(0)), content
        )


def _obfuscate(
    text: str,
    placeholders: dict[str, str],
    counters: dict[str, int],
) -> tuple[str, int]:
    """Replace every PII match in text, reusing placeholders for repeat values."""
    found = 0
    for label, pattern in _PATTERNS:

        def _replace(match: re.Match[str], label: str = label) -> str:
            nonlocal found
            value = match.group(0)
            found += 1
            if value not in placeholders:
                counters[label] = counters.get(label, 0) + 1
                placeholders[value] = f"<PII_{label}_{counters[label]}>"
            return placeholders[value]

        text = pattern.sub(_replace, text)
    return text, found

