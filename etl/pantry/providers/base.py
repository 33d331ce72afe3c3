from __future__ import annotations
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional

import aiohttp

from ..errors import ProviderError
from ..logging import log
from ..model import CatalogRecord, PortionUnit
from ..rules import RuleTable, default_table

USER_AGENT = "pantry-seed/0.3 (nutrition catalog seeder)"

@dataclass
class ProviderStats:
    requested: int = 0
    fetched: int = 0
    mapped: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)

def apply_portion_units(rec: CatalogRecord, table: Optional[RuleTable] = None) -> CatalogRecord:
    """Default `grams` unit at the record's default portion, then the unit rules in order."""
    table = table or default_table("portion_units")
    g = rec.portion_default_grams
    rec.add_portion_unit(PortionUnit(unit="grams", grams=g, is_default=True, description=f"{g:g}g portion"))
    for units in table.evaluate(rec.name, rec.tags):
        for u in units:
            rec.add_portion_unit(PortionUnit.from_dict(u))
    return rec

class Provider(ABC):
    name: str = "provider"
    source: str = ""

    def __init__(self):
        self.stats = ProviderStats()

    def enabled(self) -> bool:
        return True

    @abstractmethod
    def ingest(self) -> List[CatalogRecord]:
        ...

class NetworkProvider(Provider):
    """
    Provider backed by a JSON HTTP API.

    Ingest walks the configured work items one at a time with a fixed pause
    between requests; a failing item is logged, counted and skipped.
    `search` is used by the search engine under its own deadline.
    """
    path: str = ""

    def __init__(self, timeout_s: float = 10.0, delay_s: float = 0.2):
        super().__init__()
        self.timeout_s = timeout_s
        self.delay_s = delay_s

    @property
    def headers(self) -> Dict[str, str]:
        return {"User-Agent": USER_AGENT, "Accept": "application/json"}

    async def _get_json(self, session: aiohttp.ClientSession, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            async with session.get(url, params=params, headers=self.headers,
                                   timeout=aiohttp.ClientTimeout(total=self.timeout_s)) as resp:
                if resp.status != 200:
                    text = await resp.text()
                    raise ProviderError(f"{self.name} HTTP {resp.status}: {text[:200]}")
                return await resp.json(content_type=None)
        except asyncio.TimeoutError:
            raise ProviderError(f"{self.name} timed out after {self.timeout_s}s: {url}")
        except aiohttp.ClientError as e:
            raise ProviderError(f"{self.name} request failed: {e}")

    def _object(self, data: Any, what: str) -> Dict[str, Any]:
        if not isinstance(data, dict):
            raise ProviderError(f"{self.name} {what}: expected a JSON object, got {type(data).__name__}")
        return data

    def _list(self, data: Dict[str, Any], key: str, what: str) -> List[Any]:
        items = data.get(key) or []
        if not isinstance(items, list):
            raise ProviderError(f"{self.name} {what}: '{key}' is not a list")
        return items

    # --- ingest --------------------------------------------------------------

    @abstractmethod
    def work_items(self) -> Iterable[Any]:
        ...

    @abstractmethod
    async def fetch_item(self, session: aiohttp.ClientSession, item: Any) -> List[CatalogRecord]:
        ...

    @abstractmethod
    async def search(self, session: aiohttp.ClientSession, query: str, limit: int) -> List[CatalogRecord]:
        ...

    def ingest(self) -> List[CatalogRecord]:
        if not self.enabled():
            log().info(f"{self.name}: not configured, skipping")
            return []
        return asyncio.run(self.ingest_async())

    async def ingest_async(self) -> List[CatalogRecord]:
        out: List[CatalogRecord] = []
        async with aiohttp.ClientSession() as session:
            items = list(self.work_items())
            for i, item in enumerate(items):
                self.stats.requested += 1
                try:
                    recs = await self.fetch_item(session, item)
                except (ProviderError, KeyError, TypeError, ValueError) as e:
                    self.stats.failed += 1
                    log().warning(f"{self.name}: {item!r} failed: {e}")
                    recs = []
                for rec in recs:
                    out.append(apply_portion_units(rec))
                    self.stats.mapped += 1
                if self.delay_s > 0 and i < len(items) - 1:
                    await asyncio.sleep(self.delay_s)
        log().info(f"{self.name}: {self.stats.mapped} records, {self.stats.failed} failed")
        return out
