"""Pytest configuration and fixtures for pantry tests"""
import asyncio
import copy
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

from pantry.config import SeedConfig
from pantry.db import CatalogStore, SqliteCatalogStore
from pantry.errors import DatabaseError
from pantry.model import CatalogRecord, Nutrients, OriginKind, Provenance, Source, NUTRITION
from pantry.providers import NetworkProvider, Provider

SAMPLE_CSV = (
    "name,portion_grams_default,kcal_per_100g,protein_g_per_100g,fat_g_per_100g,carbs_g_per_100g,"
    "fiber_g_per_100g,sugar_g_per_100g,vitaminC_mg_per_100g,zinc_mg_per_100g,selenium_ug_per_100g,"
    "iron_mg_per_100g,omega3_g_per_100g,tags\n"
    '"Roti, whole wheat",45,290,9.6,7.1,46.4,9.0,1.2,0,1.9,20,3.2,0.03,grain|wholegrain|cooked\n'
    "Idli,120,60,2.0,0.4,12.0,0.8,0.2,0,0.4,4,0.6,0,grain|fermented|cooked\n"
    "Banana,118,89,1.1,0.3,22.8,2.6,12.2,8.7,0.2,1,0.3,0.03,fruit|banana\n"
    "Paneer,100,265,18.3,20.8,1.2,0,1.2,0,2.7,8,0.2,0,dairy|protein\n"
)

ENV_KEYS = [
    "PANTRY_DB_PATH", "PANTRY_REPORTS_DIR", "PANTRY_IFCT_CSV", "USDA_API_KEY", "USDA_QUERIES",
    "USDA_FDC_IDS", "OFF_DISABLE", "OFF_BARCODES", "SEED_QA_ATWATER_TOLERANCE", "SEED_QA_PORTION_BANDS",
    "PANTRY_MERGE_POLICY", "PANTRY_PROVIDER_DELAY_S", "PANTRY_HTTP_TIMEOUT_S", "PANTRY_SEARCH_DEADLINE_S",
    "PANTRY_PROMOTE",
]

def make_record(name: str, source: str = Source.IFCT.value, kcal: float = 170, protein: float = 10,
                fat: float = 10, carbs: float = 10, confidence: float = 0.9, **kwargs) -> CatalogRecord:
    rec = CatalogRecord(
        name=name,
        source=source,
        nutrients=Nutrients(energy_kcal=kcal, protein_g=protein, fat_g=fat, carbs_g=carbs),
        **kwargs,
    )
    rec.set_provenance(NUTRITION, Provenance(source=source, origin_kind=OriginKind.MEASURED, confidence=confidence))
    return rec

class StaticProvider(Provider):
    """Returns fresh copies of a fixed record list."""

    def __init__(self, name: str, records: Sequence[CatalogRecord], source: str = Source.USDA.value):
        super().__init__()
        self.name = name
        self.source = source
        self.records = list(records)

    def ingest(self) -> List[CatalogRecord]:
        self.stats.mapped = len(self.records)
        return [copy.deepcopy(r) for r in self.records]

class FailingProvider(Provider):
    name = "Broken"
    source = Source.OPEN_FOOD_FACTS.value

    def ingest(self) -> List[CatalogRecord]:
        raise RuntimeError("connection refused")

class FakeNetworkProvider(NetworkProvider):
    """Search-only provider; can hang or raise to exercise the engine."""

    def __init__(self, records: Sequence[CatalogRecord] = (), path: str = "usda", name: str = "fake",
                 hang_s: float = 0.0, exc: Optional[Exception] = None):
        super().__init__(timeout_s=1.0, delay_s=0)
        self.records = list(records)
        self.path = path
        self.name = name
        self.hang_s = hang_s
        self.exc = exc
        self.calls = 0
        self.cancelled = False

    def work_items(self):
        return []

    async def fetch_item(self, session, item):
        return []

    async def search(self, session, query, limit):
        self.calls += 1
        try:
            if self.hang_s:
                await asyncio.sleep(self.hang_s)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        if self.exc is not None:
            raise self.exc
        return [copy.deepcopy(r) for r in self.records]

class BrokenStore(CatalogStore):
    """Store whose writes always fail."""

    def upsert(self, record):
        raise DatabaseError("store unreachable")

    def find_by_key(self, name_key, source=None):
        return None

    def list_by_key(self, name_key):
        return []

    def find_by_pattern(self, substring, limit=50):
        return []

    def delete_all(self, sources=None):
        raise DatabaseError("store unreachable")

    def bulk_insert(self, records):
        raise DatabaseError("store unreachable")

    def replace_sources(self, records, sources):
        raise DatabaseError("store unreachable")

    def count(self, source=None):
        return 0

@pytest.fixture
def clean_env(monkeypatch):
    for k in ENV_KEYS:
        monkeypatch.delenv(k, raising=False)
    return monkeypatch

@pytest.fixture
def sample_csv(tmp_path) -> Path:
    p = tmp_path / "ifct_seed.csv"
    p.write_text(SAMPLE_CSV, encoding="utf-8")
    return p

@pytest.fixture
def cfg(tmp_path, sample_csv) -> SeedConfig:
    return SeedConfig(
        db_path=tmp_path / "database" / "pantry.sqlite",
        reports_dir=tmp_path / "reports",
        ifct_csv=sample_csv,
        provider_delay_s=0,
        http_timeout_s=2.0,
        search_deadline_s=2.0,
    )

@pytest.fixture
def store(tmp_path) -> SqliteCatalogStore:
    return SqliteCatalogStore(tmp_path / "catalog.sqlite")
