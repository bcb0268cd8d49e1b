"""
Conservative rule layer for spam detection.

Rules only fire on unambiguous junk (test strings, placeholders, keyboard
mashing, greeting-only posts, ads). Anything that needs intent, such as a
food request phrased like a complaint, is left to the remote classifier so
short but genuine reports are never blocked here.
"""

from __future__ import annotations

import re

from campus_pulse.processing.triage_types import SignalSource, SpamVerdict

RULE_CONFIDENCE = 0.95
MIN_CONTENT_LENGTH_FOR_RULES = 10

_I = re.IGNORECASE

# Match a whole field. A report is junk only when every non-empty field is.
JUNK_FIELD_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"^test\s*$", _I), "Test message"),
    (re.compile(r"^testing\s*$", _I), "Test message"),
    (re.compile(r"^hello\s*world\s*$", _I), "Placeholder message"),
    (re.compile(r"^asdf\s*$", _I), "Keyboard mashing"),
    (re.compile(r"^qwe(rty)?\s*$", _I), "Keyboard mashing"),
    (re.compile(r"^abc\s*$", _I), "Placeholder"),
    (re.compile(r"^xyz\s*$", _I), "Placeholder"),
    (re.compile(r"^sample\s*(text|data)?\s*$", _I), "Sample text"),
    (re.compile(r"^(hi|hello|hey)\s*[,!]?\s*$", _I), "Greeting only"),
    (re.compile(r"^(nothing|nope|naah|no)\s*[.!]?\s*$", _I), "No real content"),
)

# Match anywhere in the report.
SPAM_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"just\s+(testing|checking|kidding)\b", _I), "Testing/joke"),
    (re.compile(r"sirf\s+test\s*(hai|kar\s*raha)", _I), "Test message (Hinglish)"),
    (re.compile(r"[b-df-hj-np-tv-z]{8,}", _I), "Gibberish (long consonant string)"),
    (re.compile(r"([a-z])\1{6,}", _I), "Repeated character gibberish"),
)

_AD_WORDS = re.compile(r"\b(buy|offers?|discount|deals?|sale|cheap)\b|\d+\s*%\s*off\b", _I)
_CALL_TO_ACTION = re.compile(r"click\s+here|https?://|www\.", _I)

SPAM_PHRASES: tuple[str, ...] = (
    "hello world",
    "qwerty",
    "asdfgh",
    "sample text",
    "testing 123",
)

_CONSONANT_RUN = re.compile(r"[b-df-hj-np-tv-z]{6,}", _I)
_VOWEL = re.compile(r"[aeiou]", _I)
_WHITESPACE = re.compile(r"\s+")


def looks_like_gibberish(text: str) -> bool:
    """Vowel-ratio and consonant-cluster heuristic for keyboard mashing."""
    collapsed = _WHITESPACE.sub(" ", text).strip()
    length = len(collapsed)
    if length < 15:
        return False
    clustered = sum(len(match.group(0)) for match in _CONSONANT_RUN.finditer(collapsed))
    if clustered >= 12 and clustered / length > 0.35:
        return True
    vowels = len(_VOWEL.findall(collapsed))
    return length >= 20 and vowels < length * 0.15


def looks_like_advertising(text: str) -> bool:
    """Sales wording together with a call to action; either alone is ordinary speech."""
    return bool(_AD_WORDS.search(text)) and bool(_CALL_TO_ACTION.search(text))


def _junk_field_reason(field: str) -> str | None:
    for pattern, reason in JUNK_FIELD_PATTERNS:
        if pattern.search(field):
            return reason
    return None


def _spam(reason: str) -> SpamVerdict:
    return SpamVerdict(
        is_spam=True,
        confidence=RULE_CONFIDENCE,
        reason=reason,
        source=SignalSource.RULES,
    )


def check_spam_rules(title: str | None, description: str | None) -> SpamVerdict | None:
    """Return a spam verdict when a rule fires, ``None`` when the rules are inconclusive."""
    title_text = (title or "").strip()
    description_text = (description or "").strip()
    combined = f"{title_text}\n{description_text}".strip()

    fields = [text for text in (title_text, description_text) if text]
    junk_reasons = [_junk_field_reason(text) for text in fields]
    if fields and all(junk_reasons):
        return _spam(str(junk_reasons[0]))

    for block in (title_text, description_text):
        if len(block) < 2:
            continue
        for pattern, reason in SPAM_PATTERNS:
            if pattern.search(block):
                return _spam(reason)

    if looks_like_advertising(combined):
        return _spam("Advertising or link")

    if len(combined) < MIN_CONTENT_LENGTH_FOR_RULES:
        return None

    if looks_like_gibberish(combined):
        return _spam("Gibberish or keyboard mashing")

    combined_lower = combined.lower()
    for phrase in SPAM_PHRASES:
        if phrase in combined_lower:
            return _spam("Known spam phrase")
    return None
