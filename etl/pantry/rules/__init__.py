# -*- coding: utf-8 -*-
"""
Ordered rule tables (pattern -> outcome) and the interpreter that evaluates
them against catalog records. Tables live in YAML next to this module.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from ..contracts.schemas import RULES_SCHEMA, validate
from ..errors import RuleError
from ..shared.normalize import fold_name

RULES_DIR = Path(__file__).resolve().parent
DEFAULT_FILES = ("portion_units.yml", "derivation.yml")

@dataclass(frozen=True)
class Rule:
    then: Any
    id: str = ""
    name_contains: Tuple[str, ...] = ()
    any_tags: Tuple[str, ...] = ()
    all_tags: Tuple[str, ...] = ()

    def matches(self, name_key: str, tags: Sequence[str]) -> bool:
        tagset = {t.lower() for t in tags}
        if self.name_contains and not any(p in name_key for p in self.name_contains):
            return False
        if self.any_tags and not any(t in tagset for t in self.any_tags):
            return False
        if self.all_tags and not all(t in tagset for t in self.all_tags):
            return False
        return True

@dataclass
class RuleTable:
    name: str
    rules: List[Rule] = field(default_factory=list)
    mode: str = "first"
    default: Any = None

    def matching(self, name: str, tags: Sequence[str] = ()) -> List[Rule]:
        key = fold_name(name)
        return [r for r in self.rules if r.matches(key, tags)]

    def first(self, name: str, tags: Sequence[str] = ()) -> Optional[Rule]:
        key = fold_name(name)
        for r in self.rules:
            if r.matches(key, tags):
                return r
        return None

    def evaluate(self, name: str, tags: Sequence[str] = ()) -> Any:
        """first-mode: outcome of the first match or the default; all-mode: list of outcomes."""
        if self.mode == "all":
            return [r.then for r in self.matching(name, tags)]
        hit = self.first(name, tags)
        return hit.then if hit else self.default

def _rule_from_dict(d: Dict[str, Any]) -> Rule:
    return Rule(
        then=d["then"],
        id=d.get("id", ""),
        name_contains=tuple(fold_name(p) for p in d.get("name_contains") or []),
        any_tags=tuple(t.lower() for t in d.get("any_tags") or []),
        all_tags=tuple(t.lower() for t in d.get("all_tags") or []),
    )

def parse_tables(data: Any, where: str = "<rules>") -> Dict[str, RuleTable]:
    errors = validate(data, RULES_SCHEMA, where)
    if errors:
        raise RuleError("; ".join(errors))
    out: Dict[str, RuleTable] = {}
    for name, spec in data.items():
        out[name] = RuleTable(
            name=name,
            rules=[_rule_from_dict(r) for r in spec["rules"]],
            mode=spec.get("mode", "first"),
            default=spec.get("default"),
        )
    return out

def load_tables(path: Path) -> Dict[str, RuleTable]:
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise RuleError(f"cannot read rules {path}: {e}")
    return parse_tables(data, str(path))

@lru_cache(maxsize=1)
def _default_tables() -> Dict[str, RuleTable]:
    tables: Dict[str, RuleTable] = {}
    for fname in DEFAULT_FILES:
        tables.update(load_tables(RULES_DIR / fname))
    return tables

def default_table(name: str) -> RuleTable:
    try:
        return _default_tables()[name]
    except KeyError:
        raise RuleError(f"unknown rule table: {name}")
