from __future__ import annotations
from pathlib import Path
from typing import Dict, List, Optional

from ..io import read_delimited
from ..logging import log
from ..model import CatalogRecord, Nutrients, OriginKind, Provenance, Source, NUTRITION
from ..shared.normalize import parse_tags
from .base import Provider, apply_portion_units

REQUIRED_COLUMNS = ("name", "kcal_per_100g")

# csv column -> Nutrients field
NUTRIENT_COLUMNS: Dict[str, str] = {
    "kcal_per_100g": "energy_kcal",
    "protein_g_per_100g": "protein_g",
    "fat_g_per_100g": "fat_g",
    "carbs_g_per_100g": "carbs_g",
    "fiber_g_per_100g": "fiber_g",
    "sugar_g_per_100g": "sugar_g",
    "vitaminC_mg_per_100g": "vitamin_c_mg",
    "zinc_mg_per_100g": "zinc_mg",
    "selenium_ug_per_100g": "selenium_ug",
    "iron_mg_per_100g": "iron_mg",
    "omega3_g_per_100g": "omega3_g",
}

def _grams(raw: Optional[str], default: float = 100.0) -> float:
    try:
        g = float(raw) if raw not in (None, "") else default
    except ValueError:
        return default
    return g if g > 0 else default

class IfctProvider(Provider):
    """Bulk import of the IFCT seed CSV (header row + one food per row)."""
    name = "IFCT"
    source = Source.IFCT.value

    def __init__(self, csv_path: Path):
        super().__init__()
        self.csv_path = Path(csv_path)

    def enabled(self) -> bool:
        return self.csv_path.exists()

    def ingest(self) -> List[CatalogRecord]:
        if not self.csv_path.exists():
            log().warning(f"IFCT: file not found: {self.csv_path}")
            return []
        rows = read_delimited(self.csv_path)
        if not rows:
            log().warning(f"IFCT: empty file: {self.csv_path}")
            return []
        header = [h.strip() for h in rows[0]]
        missing = [c for c in REQUIRED_COLUMNS if c not in header]
        if missing:
            log().error(f"IFCT: header lacks required columns {missing}: {self.csv_path}")
            return []

        out: List[CatalogRecord] = []
        for lineno, values in enumerate(rows[1:], start=2):
            if not any(v.strip() for v in values):
                continue
            self.stats.fetched += 1
            if len(values) != len(header):
                self.stats.skipped += 1
                log().debug(f"IFCT line {lineno}: {len(values)} fields, expected {len(header)}; skipped")
                continue
            row = {h: v.strip() for h, v in zip(header, values)}
            rec = self._to_record(row, lineno)
            if rec is None:
                self.stats.skipped += 1
                continue
            out.append(apply_portion_units(rec))
            self.stats.mapped += 1

        log().info(f"IFCT: {self.stats.mapped} rows parsed, {self.stats.skipped} skipped")
        return out

    def _to_record(self, row: Dict[str, str], lineno: int) -> Optional[CatalogRecord]:
        name = row.get("name", "")
        if not name:
            return None
        nutrients = Nutrients(**{f: row.get(col) for col, f in NUTRIENT_COLUMNS.items()})
        rec = CatalogRecord(
            name=name,
            source=self.source,
            nutrients=nutrients,
            portion_default_grams=_grams(row.get("portion_grams_default")),
            tags=parse_tags(row.get("tags")),
        )
        rec.set_provenance(NUTRITION, Provenance(
            source=self.source, origin_kind=OriginKind.MEASURED, confidence=0.9,
            note=f"{self.csv_path.name} line {lineno}",
        ))
        return rec
