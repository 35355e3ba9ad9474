from __future__ import annotations

import re
from collections.abc import Iterable

DEFAULT_PROFANITIES = frozenset(
    {
        "arse",
        "ass",
        "asshole",
        "bastard",
        "bitch",
        "bollocks",
        "crap",
        "damn",
        "dick",
        "fuck",
        "fucking",
        "piss",
        "shit",
        "wanker",
    }
)

_WORD = re.compile(r"[\w']+")


def mask_word(word: str) -> str:
    return word[:1] + "*" * (len(word) - 1)


def mask_profanity(text: str, words: Iterable[str] = DEFAULT_PROFANITIES) -> str:
    """Replace all but the first character of each filtered word with asterisks."""
    banned = {w.lower() for w in words}
    if not banned or not text:
        return text
    return _WORD.sub(lambda m: mask_word(m.group(0)) if m.group(0).lower() in banned else m.group(0), text)
