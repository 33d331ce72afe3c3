"""Relevance scoring for search candidates.

Tiers, best first: exact folded match, prefix, substring, then the
fraction of query words found in the candidate name times a per-path cap.
Every cap sits below SUBSTRING_SCORE so word matches never outrank a
substring match.
"""
from __future__ import annotations
from typing import Dict, List

from ..model import CatalogRecord
from ..shared.normalize import fold_name

EXACT_SCORE = 1.0
PREFIX_SCORE = 0.9
SUBSTRING_SCORE = 0.8
WORD_CAP_LOCAL = 0.7
WORD_CAP_USDA = 0.7
WORD_CAP_OFF = 0.6
COMPLETE_MACROS_BONUS = 0.05
MIN_WORD_LEN = 3

# per-path floors, then one floor over the merged list
FLOOR_LOCAL = 0.3
FLOOR_USDA = 0.5
FLOOR_OFF = 0.4
FINAL_FLOOR = 0.4

# lower wins; a lower-priority candidate must beat the incumbent by more than the margin
PATH_PRIORITY: Dict[str, int] = {"local": 1, "usda": 2, "off": 3}
OTHER_PRIORITY = 4
REPLACE_MARGIN = 0.15

WORD_CAPS: Dict[str, float] = {"local": WORD_CAP_LOCAL, "usda": WORD_CAP_USDA, "off": WORD_CAP_OFF}
FLOORS: Dict[str, float] = {"local": FLOOR_LOCAL, "usda": FLOOR_USDA, "off": FLOOR_OFF}

def query_words(query: str) -> List[str]:
    return [w for w in fold_name(query).split() if len(w) >= MIN_WORD_LEN]

def name_score(query: str, name: str, word_cap: float = WORD_CAP_LOCAL) -> float:
    q, n = fold_name(query), fold_name(name)
    if not q or not n:
        return 0.0
    if n == q:
        return EXACT_SCORE
    if n.startswith(q):
        return PREFIX_SCORE
    if q in n:
        return SUBSTRING_SCORE
    words = query_words(query)
    if not words:
        return 0.0
    hits = sum(1 for w in words if w in n)
    return min(word_cap, hits / len(words) * word_cap)

def score_candidate(query: str, rec: CatalogRecord, path: str = "local") -> float:
    """Name tier score plus the complete-macros bonus, clamped to [0, 1]."""
    s = name_score(query, rec.name, WORD_CAPS.get(path, WORD_CAP_OFF))
    if s > 0 and rec.has_complete_macros():
        s += COMPLETE_MACROS_BONUS
    return max(0.0, min(1.0, round(s, 4)))

def priority(path: str) -> int:
    return PATH_PRIORITY.get(path, OTHER_PRIORITY)
