"""User-created catalog entries.

Validates the payload, rejects a second CUSTOM food with the same folded
name and stores the record with advisory quality flags attached.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from .contracts.schemas import CUSTOM_FOOD_SCHEMA, validate
from .db import CatalogStore
from .errors import CustomFoodError, DuplicateFoodError
from .logging import log
from .model import (CatalogRecord, Nutrients, OriginKind, PortionUnit, Provenance, QualityFlag,
                    Severity, Source, FODMAP_VALUES, GI_RANGE, NUTRITION, PROCESSING_CLASSES)
from .shared.normalize import fold_name

REQUIRED_NUTRIENTS = ("energy_kcal", "protein_g", "fat_g", "carbs_g")

# field -> (min, max, label)
NUTRIENT_RANGES: Dict[str, Tuple[float, float, str]] = {
    "energy_kcal": (0, 1000, "Calories"),
    "protein_g": (0, 100, "Protein"),
    "fat_g": (0, 100, "Fat"),
    "carbs_g": (0, 100, "Carbohydrates"),
    "fiber_g": (0, 100, "Fiber"),
    "sugar_g": (0, 100, "Sugar"),
    "vitamin_c_mg": (0, 1000, "Vitamin C"),
    "zinc_mg": (0, 100, "Zinc"),
    "selenium_ug": (0, 1000, "Selenium"),
    "iron_mg": (0, 100, "Iron"),
    "omega3_g": (0, 50, "Omega-3"),
}
PORTION_RANGE = (1, 10000)

def _check(payload: Dict[str, Any]) -> None:
    errors = validate(payload, CUSTOM_FOOD_SCHEMA, "custom food")
    if errors:
        raise CustomFoodError("; ".join(errors))
    if not payload["name"].strip():
        raise CustomFoodError("name is required")
    nutrients = payload["nutrients"]
    for key in REQUIRED_NUTRIENTS:
        if nutrients.get(key) is None:
            raise CustomFoodError(f"missing required nutrient: {key}")
    for key, value in nutrients.items():
        if value is None or key not in NUTRIENT_RANGES:
            continue
        lo, hi, label = NUTRIENT_RANGES[key]
        if value < lo or value > hi:
            raise CustomFoodError(f"{label} must be between {lo} and {hi}")
    portion = payload.get("portion_default_grams", 100)
    if portion < PORTION_RANGE[0] or portion > PORTION_RANGE[1]:
        raise CustomFoodError("portion size must be between 1 and 10,000 grams")
    gi = payload.get("glycemic_index")
    if gi is not None and not (GI_RANGE[0] <= gi <= GI_RANGE[1]):
        raise CustomFoodError("glycemic index must be between 0 and 110")
    if payload.get("processing_class", 1) not in PROCESSING_CLASSES:
        raise CustomFoodError("processing class must be between 1 and 4")
    if payload.get("fodmap_rating", "Unknown") not in FODMAP_VALUES:
        raise CustomFoodError(f"FODMAP rating must be one of {', '.join(FODMAP_VALUES)}")

def advisory_flags(n: Nutrients, processing_class: int) -> List[QualityFlag]:
    flags = []
    macros = n.protein_g + n.fat_g + n.carbs_g
    if macros > 100:
        flags.append(QualityFlag("MACRO_OVER_100", Severity.WARN,
                                 "total macronutrients exceed 100 g per 100 g", macros, 100))
    if n.energy_kcal > 600:
        flags.append(QualityFlag("HIGH_CALORIE_DENSITY", Severity.INFO,
                                 "very high calorie density (>600 kcal/100g)", n.energy_kcal, 600))
    if n.carbs_g > 20 and n.fiber_g == 0:
        flags.append(QualityFlag("MISSING_FIBER", Severity.INFO,
                                 "high carbohydrate content but no fiber reported", n.carbs_g, 20))
    if n.protein_g > 20 and processing_class == 4:
        flags.append(QualityFlag("HIGH_PROTEIN_ULTRA_PROCESSED", Severity.WARN,
                                 "high protein content in an ultra-processed food", n.protein_g, 20))
    return flags

def create_custom_food(store: CatalogStore, payload: Dict[str, Any]) -> CatalogRecord:
    """Validate `payload` and insert a CUSTOM record. Raises CustomFoodError / DuplicateFoodError."""
    _check(payload)
    name = payload["name"].strip()
    key = fold_name(name)
    existing = store.find_by_key(key, Source.CUSTOM.value)
    if existing is not None:
        raise DuplicateFoodError(f"a custom food named {existing.name!r} already exists", existing=existing)

    nutrients = Nutrients.from_dict(payload["nutrients"])
    portion = float(payload.get("portion_default_grams", 100))
    processing_class = int(payload.get("processing_class", 1))
    rec = CatalogRecord(
        name=name,
        source=Source.CUSTOM.value,
        nutrients=nutrients,
        portion_default_grams=portion,
        glycemic_index=payload.get("glycemic_index"),
        fodmap_rating=payload.get("fodmap_rating", "Unknown"),
        processing_class=processing_class,
    )
    for a in payload.get("aliases") or []:
        rec.add_alias(a)
    for t in payload.get("tags") or []:
        rec.add_tag(t)
    units = payload.get("portion_units") or []
    if units:
        for u in units:
            rec.add_portion_unit(PortionUnit.from_dict(u))
    else:
        rec.add_portion_unit(PortionUnit(unit="piece", grams=portion, is_default=True, description="Standard piece"))
    rec.set_provenance(NUTRITION, Provenance(
        source=Source.CUSTOM, origin_kind=OriginKind.ESTIMATED, confidence=0.5,
        last_verified_at=datetime.now(timezone.utc), note="custom food created by user"))
    for f in advisory_flags(nutrients, processing_class):
        rec.add_flag(f)

    store.upsert(rec)
    log().info(f"custom food created: {name} ({len(rec.quality_flags)} flags)")
    return rec
