from __future__ import annotations

import re
from typing import Pattern, Tuple

# Applied in order. Each replacement removes the digits, "@" or honorific
# that its pattern needs, so repeated passes converge.
PHI_PATTERNS: Tuple[Tuple[str, Pattern[str], str], ...] = (
    ("name", re.compile(r"\b(Mr\.|Mrs\.|Ms\.|Dr\.|Miss)\s+[A-Z][a-z]+\b"), "[Patient]"),
    ("mrn", re.compile(r"\b\d{6,10}\b"), "[MRN]"),
    ("ssn", re.compile(r"\b\d{3}[-\s]?\d{2}[-\s]?\d{4}\b"), "[SSN]"),
    ("email", re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[Email]"),
    ("phone", re.compile(r"\b(\+\d{1,2}\s?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"), "[Phone]"),
    ("date", re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"), "[Date]"),
    (
        "address",
        re.compile(r"\b\d+\s+[A-Za-z\s]+,\s+[A-Za-z\s]+,\s+[A-Z]{2}\s+\d{5}(-\d{4})?\b"),
        "[Address]",
    ),
)


def _single_pass(text: str) -> str:
    for _name, pattern, placeholder in PHI_PATTERNS:
        text = pattern.sub(placeholder, text)
    return text


def strip_phi(text: str) -> str:
    """Redact PHI-shaped substrings before text leaves the process.

    Best effort only: names without an honorific, for example, are kept.
    Passes are repeated until the text stops changing, so
    ``strip_phi(strip_phi(x)) == strip_phi(x)``.
    """

    if not text:
        return text

    previous = None
    scrubbed = text
    while scrubbed != previous:
        previous = scrubbed
        scrubbed = _single_pass(scrubbed)
    return scrubbed
