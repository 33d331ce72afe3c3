"""USDA FoodData Central adapter.

Ingest by free-text query (top hits per query, search endpoint) and by FDC id
(detail endpoint). Search payloads carry flat nutrient rows
(`nutrientNumber`, `unitName`, `value`); detail payloads nest them
(`nutrient.number`, `nutrient.unitName`, `amount`). Both map to the same
per-100 g record.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import aiohttp

from ..errors import ProviderError
from ..model import CatalogRecord, Nutrients, OriginKind, Provenance, Source, NUTRITION
from .base import NetworkProvider

API_SEARCH = "https://api.nal.usda.gov/fdc/v1/foods/search"
API_FOOD = "https://api.nal.usda.gov/fdc/v1/food/{}"

# nutrient number -> (Nutrients field, canonical unit)
NUTRIENT_NUMBERS: Dict[str, Tuple[str, str]] = {
    "208": ("energy_kcal", "kcal"),
    "203": ("protein_g", "g"),
    "204": ("fat_g", "g"),
    "205": ("carbs_g", "g"),
    "291": ("fiber_g", "g"),
    "269": ("sugar_g", "g"),
    "401": ("vitamin_c_mg", "mg"),
    "309": ("zinc_mg", "mg"),
    "317": ("selenium_ug", "ug"),
    "303": ("iron_mg", "mg"),
}
ENERGY_KJ = "268"
OMEGA3_NUMBERS = ("851", "629", "621")   # ALA 18:3 n-3, EPA 20:5, DHA 22:6

KJ_PER_KCAL = 4.184
_MASS_IN_G = {"g": 1.0, "mg": 1e-3, "ug": 1e-6}

def _unit(raw: Optional[str]) -> str:
    u = (raw or "").strip().lower().replace("µ", "u").replace("μ", "u")
    return "kj" if u == "kj" else u

def convert(value: float, unit: str, target: str) -> float:
    """Convert between kcal/kJ and mass units; unknown units pass through."""
    unit, target = _unit(unit), _unit(target)
    if unit == target or not unit:
        return value
    if unit == "kj" and target == "kcal":
        return value / KJ_PER_KCAL
    if unit == "kcal" and target == "kj":
        return value * KJ_PER_KCAL
    if unit in _MASS_IN_G and target in _MASS_IN_G:
        return value * _MASS_IN_G[unit] / _MASS_IN_G[target]
    return value

def _rows(food: Dict[str, Any]) -> Iterable[Tuple[str, str, float]]:
    """(number, unit, amount) for both flat and nested nutrient shapes."""
    for fn in food.get("foodNutrients") or []:
        if not isinstance(fn, dict):
            continue
        if "nutrient" in fn and isinstance(fn["nutrient"], dict):
            n = fn["nutrient"]
            number, unit, amount = n.get("number"), n.get("unitName"), fn.get("amount")
        else:
            number, unit, amount = fn.get("nutrientNumber"), fn.get("unitName"), fn.get("value")
        if number is None or amount is None:
            continue
        try:
            yield str(number), unit or "", float(amount)
        except (TypeError, ValueError):
            continue

def map_nutrients(food: Dict[str, Any]) -> Nutrients:
    values: Dict[str, float] = {}
    kj: Optional[float] = None
    omega3 = 0.0
    for number, unit, amount in _rows(food):
        if number in NUTRIENT_NUMBERS:
            field_name, target = NUTRIENT_NUMBERS[number]
            if field_name == "energy_kcal" and _unit(unit) == "kj":
                kj = amount
                continue
            values[field_name] = convert(amount, unit, target)
        elif number == ENERGY_KJ:
            kj = amount
        elif number in OMEGA3_NUMBERS:
            omega3 += convert(amount, unit, "g")
    if "energy_kcal" not in values and kj is not None:
        values["energy_kcal"] = kj / KJ_PER_KCAL
    values["omega3_g"] = omega3
    return Nutrients(**{k: round(v, 4) for k, v in values.items()})

def _category(food: Dict[str, Any]) -> Optional[str]:
    cat = food.get("foodCategory")
    if isinstance(cat, dict):
        cat = cat.get("description")
    return cat.strip().lower() if isinstance(cat, str) and cat.strip() else None

class UsdaProvider(NetworkProvider):
    name = "USDA"
    source = Source.USDA.value
    path = "usda"

    def __init__(self, api_key: Optional[str], queries: Sequence[str] = (), fdc_ids: Sequence[int] = (),
                 page_size: int = 5, timeout_s: float = 10.0, delay_s: float = 0.2):
        super().__init__(timeout_s=timeout_s, delay_s=delay_s)
        self.api_key = api_key
        self.queries = list(queries)
        self.fdc_ids = list(fdc_ids)
        self.page_size = page_size

    def enabled(self) -> bool:
        return bool(self.api_key)

    def work_items(self) -> Iterable[Any]:
        for q in self.queries:
            yield ("query", q)
        for fid in self.fdc_ids:
            yield ("fdc", fid)

    async def fetch_item(self, session: aiohttp.ClientSession, item: Any) -> List[CatalogRecord]:
        kind, value = item
        if kind == "query":
            return await self.search(session, value, self.page_size)
        food = self._object(await self._get_json(session, API_FOOD.format(value), {"api_key": self.api_key}),
                            f"FDC {value}")
        self.stats.fetched += 1
        return [self.to_record(food)]

    async def search(self, session: aiohttp.ClientSession, query: str, limit: int) -> List[CatalogRecord]:
        if not self.api_key:
            return []
        data = await self._get_json(session, API_SEARCH,
                                    {"api_key": self.api_key, "query": query, "pageSize": limit})
        data = self._object(data, f"search {query!r}")
        foods = self._list(data, "foods", f"search {query!r}")
        self.stats.fetched += len(foods)
        out = []
        for food in foods[:limit]:
            try:
                out.append(self.to_record(food))
            except ProviderError:
                self.stats.skipped += 1
        return out

    def to_record(self, food: Dict[str, Any]) -> CatalogRecord:
        food = self._object(food, "food")
        name = str(food.get("description") or "").strip()
        if not name:
            raise ProviderError(f"USDA food {food.get('fdcId')} has no description")
        rec = CatalogRecord(
            name=name,
            source=self.source,
            external_id=food.get("fdcId"),
            nutrients=map_nutrients(food),
        )
        cat = _category(food)
        if cat:
            rec.add_tag(cat)
        if food.get("brandOwner"):
            rec.add_tag("branded")
        rec.set_provenance(NUTRITION, Provenance(
            source=self.source, origin_kind=OriginKind.MEASURED, confidence=0.9,
            last_verified_at=food.get("publicationDate"),
            note=f"FDC {food.get('fdcId')} ({food.get('dataType') or 'unknown'})",
        ))
        return rec
