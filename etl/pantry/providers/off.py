from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence

import aiohttp

from ..errors import ProviderError
from ..model import (CatalogRecord, Nutrients, OriginKind, Provenance, Source,
                     NUTRITION, PROCESSING_CLASS)
from .base import NetworkProvider

API_PRODUCT = "https://world.openfoodfacts.org/api/v2/product/{}.json"
API_SEARCH = "https://world.openfoodfacts.org/cgi/search.pl"
FIELDS = ",".join([
    "code", "product_name", "brands", "serving_size", "nutriments", "nova_group",
    "categories_tags_en", "categories_tags", "ingredients_analysis_tags", "last_modified_t",
])

# nutriments key -> (Nutrients field, factor from the grams OFF reports per 100 g)
NUTRIMENTS: Dict[str, tuple] = {
    "energy-kcal_100g": ("energy_kcal", 1.0),
    "proteins_100g": ("protein_g", 1.0),
    "fat_100g": ("fat_g", 1.0),
    "carbohydrates_100g": ("carbs_g", 1.0),
    "fiber_100g": ("fiber_g", 1.0),
    "sugars_100g": ("sugar_g", 1.0),
    "vitamin-c_100g": ("vitamin_c_mg", 1000.0),
    "zinc_100g": ("zinc_mg", 1000.0),
    "iron_100g": ("iron_mg", 1000.0),
    "selenium_100g": ("selenium_ug", 1_000_000.0),
    "omega-3-fat_100g": ("omega3_g", 1.0),
}
NOVA_TAGS = {4: "ultra-processed", 3: "processed", 2: "cooked", 1: "unprocessed"}

def map_nutriments(n: Dict[str, Any]) -> Nutrients:
    values: Dict[str, float] = {}
    for key, (field_name, factor) in NUTRIMENTS.items():
        raw = n.get(key)
        try:
            if raw is not None and raw != "":
                values[field_name] = round(float(raw) * factor, 4)
        except (TypeError, ValueError):
            continue
    if "energy_kcal" not in values and n.get("energy_100g") not in (None, ""):
        try:
            values["energy_kcal"] = round(float(n["energy_100g"]) / 4.184, 4)  # kJ
        except (TypeError, ValueError):
            pass
    return Nutrients(**values)

def _nova(raw: Any) -> Optional[int]:
    try:
        return int(raw) if raw not in (None, "") else None
    except (TypeError, ValueError):
        return None

def _verified_at(product: Dict[str, Any]) -> Optional[str]:
    ts = product.get("last_modified_t")
    if not ts:
        return None
    try:
        return datetime.fromtimestamp(int(ts), tz=timezone.utc).isoformat()
    except (TypeError, ValueError, OverflowError, OSError):
        return None

def _category_tags(product: Dict[str, Any]) -> List[str]:
    raw = product.get("categories_tags_en") or product.get("categories_tags") or []
    out = []
    for c in raw:
        c = str(c).split(":", 1)[-1].replace("-", " ").replace("_", " ").strip()
        if c:
            out.append(c)
    return out

class OpenFoodFactsProvider(NetworkProvider):
    name = "OpenFoodFacts"
    source = Source.OPEN_FOOD_FACTS.value
    path = "off"

    def __init__(self, barcodes: Sequence[str] = (), disabled: bool = False,
                 timeout_s: float = 10.0, delay_s: float = 0.2):
        super().__init__(timeout_s=timeout_s, delay_s=delay_s)
        self.barcodes = list(barcodes)
        self.disabled = disabled

    def enabled(self) -> bool:
        return not self.disabled

    def work_items(self) -> Iterable[Any]:
        return iter(self.barcodes)

    async def fetch_item(self, session: aiohttp.ClientSession, item: Any) -> List[CatalogRecord]:
        data = self._object(await self._get_json(session, API_PRODUCT.format(item), {"fields": FIELDS}),
                            f"barcode {item}")
        product = data.get("product")
        if not product:
            self.stats.skipped += 1
            return []
        self.stats.fetched += 1
        return [self.to_record(product)]

    async def search(self, session: aiohttp.ClientSession, query: str, limit: int) -> List[CatalogRecord]:
        if self.disabled:
            return []
        params = {"search_terms": query, "search_simple": 1, "action": "process",
                  "json": 1, "page_size": limit * 2, "fields": FIELDS}
        data = self._object(await self._get_json(session, API_SEARCH, params), f"search {query!r}")
        products = self._list(data, "products", f"search {query!r}")
        self.stats.fetched += len(products)
        out = []
        for p in products:
            try:
                out.append(self.to_record(p))
            except ProviderError:
                self.stats.skipped += 1
        return out

    def to_record(self, product: Dict[str, Any]) -> CatalogRecord:
        product = self._object(product, "product")
        name = str(product.get("product_name") or product.get("brands") or "").strip()
        if not name:
            raise ProviderError(f"OFF product {product.get('code')} has no name")
        verified = _verified_at(product)
        rec = CatalogRecord(
            name=name,
            source=self.source,
            external_id=product.get("code"),
            nutrients=map_nutriments(self._object(product.get("nutriments") or {}, "nutriments")),
        )
        analysis = product.get("ingredients_analysis_tags") or []
        if "en:vegan" in analysis:
            rec.add_tag("vegan")
        if "en:vegetarian" in analysis:
            rec.add_tag("vegetarian")
        nova = _nova(product.get("nova_group"))
        if nova is not None:
            rec.processing_class = nova
            if nova in NOVA_TAGS:
                rec.add_tag(NOVA_TAGS[nova])
            rec.set_provenance(PROCESSING_CLASS, Provenance(
                source=self.source, origin_kind=OriginKind.MEASURED, confidence=0.9,
                last_verified_at=verified, note="NOVA group from Open Food Facts",
            ))
        for tag in _category_tags(product):
            rec.add_tag(tag)
        rec.set_provenance(NUTRITION, Provenance(
            source=self.source, origin_kind=OriginKind.MEASURED, confidence=0.8,
            last_verified_at=verified, note=f"OFF barcode {product.get('code')}",
        ))
        return rec
