from __future__ import annotations
import asyncio
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

import aiohttp

from ..config import SeedConfig
from ..db import CatalogStore
from ..errors import DatabaseError
from ..logging import log
from ..model import CatalogRecord
from ..providers import NetworkProvider, OpenFoodFactsProvider, UsdaProvider
from ..shared.normalize import fold_name
from .scoring import (FINAL_FLOOR, FLOORS, FLOOR_LOCAL, REPLACE_MARGIN,
                      priority, query_words, score_candidate)

SCOPES = ("combined", "local", "usda", "off")

@dataclass
class SearchCandidate:
    record: CatalogRecord
    path: str
    relevance: float

@dataclass
class SearchResult:
    name: str
    source: str
    path: str
    relevance: float
    external_id: Optional[str]
    record: CatalogRecord

    @staticmethod
    def from_candidate(c: SearchCandidate) -> "SearchResult":
        r = c.record
        return SearchResult(name=r.name, source=r.source, path=c.path, relevance=c.relevance,
                            external_id=r.external_id, record=r)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "source": self.source,
            "path": self.path,
            "relevance": self.relevance,
            "external_id": self.external_id,
            "portion_default_grams": self.record.portion_default_grams,
            "nutrients": self.record.nutrients.to_dict(),
            "tags": list(self.record.tags),
        }

def dedup(candidates: Sequence[SearchCandidate]) -> List[SearchCandidate]:
    """
    One candidate per folded name. The higher-priority path keeps the slot
    unless the other candidate scores more than REPLACE_MARGIN higher; within
    a path the higher score wins and ties keep the first seen.
    """
    best: Dict[str, SearchCandidate] = {}
    for c in candidates:
        key = c.record.name_key or fold_name(c.record.name)
        cur = best.get(key)
        if cur is None:
            best[key] = c
            continue
        pc, pcur = priority(c.path), priority(cur.path)
        if pc < pcur:
            if cur.relevance - c.relevance <= REPLACE_MARGIN:
                best[key] = c
        elif pc > pcur:
            if c.relevance - cur.relevance > REPLACE_MARGIN:
                best[key] = c
        elif c.relevance > cur.relevance:
            best[key] = c
    return list(best.values())

class SearchEngine:
    """Free-text food search over the local catalog and the network providers."""

    def __init__(self, store: Optional[CatalogStore] = None, providers: Sequence[NetworkProvider] = (),
                 deadline_s: float = 8.0):
        self.store = store
        self.providers = list(providers)
        self.deadline_s = deadline_s

    @staticmethod
    def from_config(cfg: SeedConfig, store: Optional[CatalogStore] = None) -> "SearchEngine":
        providers: List[NetworkProvider] = []
        if cfg.usda_api_key:
            providers.append(UsdaProvider(cfg.usda_api_key, timeout_s=cfg.http_timeout_s, delay_s=0))
        if not cfg.off_disable:
            providers.append(OpenFoodFactsProvider(timeout_s=cfg.http_timeout_s, delay_s=0))
        return SearchEngine(store, providers, deadline_s=cfg.search_deadline_s)

    def search(self, query: str, source_scope: str = "combined", limit: int = 20) -> List[SearchResult]:
        return asyncio.run(self.search_async(query, source_scope, limit))

    async def search_async(self, query: str, source_scope: str = "combined", limit: int = 20) -> List[SearchResult]:
        if not fold_name(query):
            raise ValueError("search query must not be empty")
        if source_scope not in SCOPES:
            raise ValueError(f"source_scope must be one of {SCOPES}, got {source_scope!r}")
        if limit < 1:
            raise ValueError("limit must be positive")

        candidates: List[SearchCandidate] = []
        if source_scope in ("combined", "local"):
            candidates.extend(self._local(query, limit))
        remote = [p for p in self.providers if source_scope == "combined" or p.path == source_scope]
        if remote:
            candidates.extend(await self._remote(query, limit, remote))

        kept = dedup([c for c in candidates if c.relevance >= FINAL_FLOOR])
        kept.sort(key=lambda c: c.relevance, reverse=True)
        return [SearchResult.from_candidate(c) for c in kept[:limit]]

    # --- local ---------------------------------------------------------------

    def _local_rows(self, query: str, limit: int) -> List[CatalogRecord]:
        key = fold_name(query)
        rows = self.store.list_by_key(key)
        if rows:
            return rows
        rows = self.store.find_by_pattern(key, limit * 2)
        if rows:
            return rows
        seen, out = set(), []
        for w in query_words(query):
            for r in self.store.find_by_pattern(w, limit * 2):
                if (r.name_key, r.source) not in seen:
                    seen.add((r.name_key, r.source))
                    out.append(r)
            if len(out) >= limit * 2:
                break
        return out[:limit * 2]

    def _local(self, query: str, limit: int) -> List[SearchCandidate]:
        if self.store is None:
            return []
        try:
            rows = self._local_rows(query, limit)
        except DatabaseError as e:
            log().error(f"search: local catalog unavailable: {e}")
            return []
        out = []
        for r in rows:
            s = score_candidate(query, r, "local")
            if s >= FLOOR_LOCAL:
                out.append(SearchCandidate(r, "local", s))
        return out

    # --- network -------------------------------------------------------------

    async def _remote(self, query: str, limit: int, providers: Sequence[NetworkProvider]) -> List[SearchCandidate]:
        async with aiohttp.ClientSession() as session:
            tasks = {asyncio.ensure_future(p.search(session, query, limit)): p for p in providers}
            done, pending = await asyncio.wait(list(tasks), timeout=self.deadline_s)
            for t in pending:
                log().warning(f"search: {tasks[t].name} missed the {self.deadline_s}s deadline, cancelled")
                t.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        out: List[SearchCandidate] = []
        for t, p in tasks.items():
            if t not in done or t.cancelled():
                continue
            exc = t.exception()
            if exc is not None:
                log().warning(f"search: {p.name} failed: {exc}")
                continue
            floor = FLOORS.get(p.path, FINAL_FLOOR)
            for rec in t.result():
                s = score_candidate(query, rec, p.path)
                if s >= floor:
                    out.append(SearchCandidate(rec, p.path, s))
        return out
