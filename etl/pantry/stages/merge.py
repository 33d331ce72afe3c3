from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

from ..config import MERGE_POLICIES
from ..errors import ConfigError
from ..logging import log
from ..model import CatalogRecord, Source, NUTRITION
from ..shared.normalize import fold_name

SOURCE_PRIORITY: Dict[str, int] = {
    Source.IFCT.value: 1,
    Source.USDA.value: 2,
    Source.OPEN_FOOD_FACTS.value: 3,
    Source.CUSTOM.value: 4,
}

@dataclass
class MergeStats:
    input: int = 0
    output: int = 0
    duplicate_groups: int = 0
    duplicates_folded: int = 0
    reingested: int = 0
    unnamed: int = 0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, int]:
        return {
            "input": self.input,
            "output": self.output,
            "duplicate_groups": self.duplicate_groups,
            "duplicates_folded": self.duplicates_folded,
            "reingested": self.reingested,
            "unnamed": self.unnamed,
        }

def _confidence(rec: CatalogRecord) -> float:
    prov = rec.provenance.get(NUTRITION)
    return prov.confidence if prov else 0.0

def _incoming_wins(incoming: CatalogRecord, incumbent: CatalogRecord, policy: str) -> bool:
    if policy == "source_priority":
        return SOURCE_PRIORITY.get(incoming.source, 99) < SOURCE_PRIORITY.get(incumbent.source, 99)
    if policy == "confidence":
        return _confidence(incoming) > _confidence(incumbent)
    return False

def merge_records(records: Iterable[CatalogRecord], policy: str = "first_seen") -> Tuple[List[CatalogRecord], MergeStats]:
    """
    Reduce adapter output to one record per folded name, first-seen order.

    Cross-source collisions keep one record (chosen by `policy`) whose aliases
    hold both display names plus the loser's aliases. A repeat from the same
    source is a re-ingestion: its content replaces the retained record, aliases
    are kept.
    """
    if policy not in MERGE_POLICIES:
        raise ConfigError(f"unknown merge policy {policy!r}")
    stats = MergeStats()
    merged: Dict[str, CatalogRecord] = {}
    dup_keys = set()

    for rec in records:
        stats.input += 1
        key = rec.name_key or fold_name(rec.name)
        if not key:
            stats.unnamed += 1
            continue
        rec.name_key = key
        cur = merged.get(key)
        if cur is None:
            merged[key] = rec
            continue

        if cur.source == rec.source:
            for a in cur.aliases:
                rec.add_alias(a)
            merged[key] = rec
            stats.reingested += 1
            continue

        stats.duplicates_folded += 1
        if key not in dup_keys:
            dup_keys.add(key)
            stats.duplicate_groups += 1
        stats.warnings.append(
            f"Duplicate nameKey: '{key}' from {rec.source} ('{rec.name}') collides with {cur.source} ('{cur.name}')"
        )
        winner, loser = (rec, cur) if _incoming_wins(rec, cur, policy) else (cur, rec)
        for alias in [winner.name, loser.name, *loser.aliases]:
            winner.add_alias(alias)
        merged[key] = winner

    out = list(merged.values())
    stats.output = len(out)
    log().info(f"merge[{policy}]: {stats.input} in, {stats.output} out, {stats.duplicates_folded} duplicates folded")
    return out, stats

def run(ctx) -> Dict[str, int]:
    records, stats = merge_records(ctx.records, ctx.cfg.merge_policy)
    ctx.records = records
    ctx.merge_stats = stats
    for msg in stats.warnings:
        ctx.qa.add_warning(msg)
    ctx.qa.metrics["duplicates"] = stats.duplicates_folded
    return stats.to_dict()
