# copilot/rag/tokenizer.py
from __future__ import annotations

import re
from collections import Counter
from typing import Iterable, List, Optional

# Anything that is not a word character or whitespace becomes a separator.
_NON_WORD = re.compile(r"[^\w\s]")
_MIN_TOKEN_LEN = 2


def tokenize(text: Optional[str]) -> List[str]:
    """
    Lowercase, strip punctuation and split on whitespace.

    Tokens of a single character are dropped. Order is preserved and
    duplicates are kept, so the result can feed both overlap and
    term-frequency scoring.
    """
    if not text:
        return []
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) >= _MIN_TOKEN_LEN]


def term_frequency(tokens: Iterable[str]) -> Counter:
    """Count token occurrences. Unseen tokens are absent, never zero-valued."""
    return Counter(tokens)
