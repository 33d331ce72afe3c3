# -*- coding: utf-8 -*-
from __future__ import annotations
import re
from typing import Iterable, List, Optional

_NON_ALNUM_RE = re.compile(r"[\W_]+")

def fold_name(text: Optional[str]) -> str:
    """
    Canonical comparison key for a food name: lowercase, every run of
    non-alphanumerics becomes one space, trimmed. None/"" -> "".
    Shared by merge, store keys, search scoring and dedup.
    """
    if not text:
        return ""
    return _NON_ALNUM_RE.sub(" ", str(text).lower()).strip()

def parse_tags(text: Optional[str]) -> List[str]:
    """Pipe-delimited tag string -> list of trimmed, non-empty tags."""
    if not text:
        return []
    return [t.strip() for t in text.split("|") if t.strip()]

def contains_keywords(text: Optional[str], keywords: Iterable[str]) -> bool:
    if not text or not keywords:
        return False
    folded = fold_name(text)
    return any(fold_name(k) and fold_name(k) in folded for k in keywords)
