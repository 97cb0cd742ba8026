"""
Keyword Extraction

Reduces a natural-language request to the terms worth searching history
for. "show me all docker containers" -> ["docker", "containers"].
"""

import logging
import re
from typing import List

logger = logging.getLogger(__name__)

TOKEN_SPLIT = re.compile(r'[^a-zA-Z0-9_.\-]+')

MIN_TOKEN_LENGTH = 2

STOP_WORDS = frozenset({
    # articles and auxiliaries
    "a", "an", "the", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "must", "shall",
    # pronouns
    "i", "me", "my", "we", "our", "you", "your", "he", "she", "it",
    "they", "them", "their", "this", "that", "these", "those",
    "what", "which", "who", "whom", "how", "when", "where", "why",
    # quantifiers
    "all", "any", "both", "each", "few", "more", "most", "some",
    # request verbs
    "show", "get", "find", "list", "display", "give", "tell", "can",
    "please", "want", "need", "like",
    # prepositions and conjunctions
    "to", "of", "in", "for", "on", "with", "at", "by", "from", "as",
    "into", "through", "during", "before", "after", "above", "below",
    "between", "and", "or", "but", "not",
})


def tokenize(text: str) -> List[str]:
    """Lowercase and split on anything outside [a-zA-Z0-9_.-]."""
    return [token for token in TOKEN_SPLIT.split(text.lower()) if token]


def extract_keywords(text: str) -> List[str]:
    """
    Extract salient search terms from a natural-language request.

    Args:
        text: Free text

    Returns:
        Unique lowercase tokens (length >= 2, no stop words) in first-seen order
    """
    keywords = []
    seen = set()

    for token in tokenize(text):
        if len(token) < MIN_TOKEN_LENGTH or token in STOP_WORDS or token in seen:
            continue
        seen.add(token)
        keywords.append(token)

    logger.debug(f"Keywords for {text!r}: {keywords}")
    return keywords
