"""
Text tokenization for point search.

Tokens are lowercase word fragments. No stemming, no stop words: a query
matches a point only when every query token appears verbatim in the point's
token set.
"""

import re
from typing import Optional

# Runs of non-word characters separate tokens
_NON_WORDS_RE = re.compile(r"\W+")


def tokenize(text: Optional[str]) -> list[str]:
    """Convert text to deduplicated search tokens, in first-seen order."""
    if not text:
        return []
    fragments = _NON_WORDS_RE.split(text.lower())
    # dict preserves insertion order, so this dedups deterministically
    return list(dict.fromkeys(f for f in fragments if f))
