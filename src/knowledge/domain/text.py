"""
Question text handling: personal-data redaction, normalization for the
dedup hash, and a coarse ru/uz/en language guess.
"""

import hashlib
import re

_REDACTIONS = [
    (re.compile(r"\+?[0-9]{10,15}"), "[PHONE]"),
    (re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"), "[EMAIL]"),
    (re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b"), "[CARD]"),
    (re.compile(r"\b[A-Z]{2}\d{7}\b", re.IGNORECASE), "[ID]"),
    (re.compile(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b"), "[IP]"),
    (
        re.compile(r"https?://\S+(?:token|key|secret|password|auth)\S*", re.IGNORECASE),
        "[URL_WITH_SECRET]",
    ),
]

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")
_CYRILLIC_RE = re.compile(r"[а-яё]", re.IGNORECASE)
_LATIN_RE = re.compile(r"[a-z]", re.IGNORECASE)
_UZBEK_CYRILLIC_RE = re.compile(r"[ўқғҳ]", re.IGNORECASE)


def redact_personal_data(text: str) -> str:
    """Replace phones, e-mails, cards, ids, IPs and secret-bearing URLs."""
    if not text:
        return ""
    for pattern, placeholder in _REDACTIONS:
        text = pattern.sub(placeholder, text)
    return text


def normalize_question(text: str) -> str:
    """Lowercase, drop punctuation, collapse whitespace."""
    lowered = _PUNCTUATION_RE.sub("", text.lower())
    return _WHITESPACE_RE.sub(" ", lowered).strip()


def question_hash(text: str) -> str:
    """Stable 64-char hex digest of the normalized question."""
    return hashlib.sha256(normalize_question(text).encode("utf-8")).hexdigest()


def detect_language(text: str) -> str:
    """
    'uz' when any Uzbek-only Cyrillic letter appears, 'ru'/'en' when one
    alphabet outnumbers the other two to one, otherwise 'ru'.
    """
    if _UZBEK_CYRILLIC_RE.search(text):
        return "uz"

    cyrillic = len(_CYRILLIC_RE.findall(text))
    latin = len(_LATIN_RE.findall(text))
    if cyrillic > latin * 2:
        return "ru"
    if latin > cyrillic * 2:
        return "en"
    return "ru"
