"""
Heuristic prompt classification.

classify_message() maps raw user text to a RoutingMeta (category, complexity)
using whole-word keyword families from the router config. Pure and
deterministic: no I/O, no state, always returns a value.

Category priority:   coding > reasoning > balanced > word count
Complexity priority: high > medium > low > word count
"""

import logging
import re
from typing import List, Optional, Pattern, Tuple

from graph.config import CLASSIFIER_CFG
from graph.models import RoutingMeta

logger = logging.getLogger("tutor-router.classifier")

SHORT_MESSAGE_WORDS = int(CLASSIFIER_CFG.get("short_message_words", 10))
COMPLEXITY_WORDS = CLASSIFIER_CFG.get("complexity_words", {"high": 30, "medium": 15})


def _compile(keywords: List[str]) -> Pattern[str]:
    # \b on both ends so "class" does not match inside "classical"
    alternatives = "|".join(re.escape(k) for k in sorted(keywords, key=len, reverse=True))
    return re.compile(rf"\b({alternatives})\b", re.I)


# Precompile in config order (YAML mappings keep insertion order)
CATEGORY_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    (name, _compile(kws)) for name, kws in CLASSIFIER_CFG.get("categories", {}).items()
]
COMPLEXITY_PATTERNS: List[Tuple[str, Pattern[str]]] = [
    (level, _compile(CLASSIFIER_CFG.get("complexity", {}).get(level, [])))
    for level in ("high", "medium", "low")
    if CLASSIFIER_CFG.get("complexity", {}).get(level)
]


def count_words(text: str) -> int:
    """Whitespace-delimited word count; tolerant of repeated whitespace."""
    return len(text.split())


def _first_match(text: str, patterns: List[Tuple[str, Pattern[str]]]) -> Tuple[Optional[str], Optional[str]]:
    for name, pattern in patterns:
        m = pattern.search(text)
        if m:
            return name, m.group(1).lower()
    return None, None


def estimate_complexity(message: str) -> str:
    level, _ = _first_match(message, COMPLEXITY_PATTERNS)
    if level:
        return level

    words = count_words(message)
    if words > int(COMPLEXITY_WORDS.get("high", 30)):
        return "high"
    if words > int(COMPLEXITY_WORDS.get("medium", 15)):
        return "medium"
    return "low"


def classify_message(message: str) -> RoutingMeta:
    """
    Classify a message into a routing category and a complexity level.

    The category drives chain construction; complexity is informational
    (logged, surfaced in debug output and in the prompt enhancement).
    """
    category, keyword = _first_match(message, CATEGORY_PATTERNS)
    if category is None:
        category = "fast" if count_words(message) < SHORT_MESSAGE_WORDS else "balanced"

    meta = RoutingMeta(
        category=category,
        complexity=estimate_complexity(message),
        matched_keyword=keyword,
    )
    logger.debug(f"Classified message: category={meta.category} complexity={meta.complexity} keyword={keyword}")
    return meta
