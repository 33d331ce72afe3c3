#!/usr/bin/env python3
"""
Catalog record model

One CatalogRecord per distinct food: nutrients per 100 g, portion units,
derived attributes (GI/GL, FODMAP, processing class), per-attribute
provenance and the quality flags raised by QA.
"""

from __future__ import annotations
from dataclasses import dataclass, field, asdict, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .shared.normalize import fold_name


class Source(str, Enum):
    IFCT = "IFCT"                    # bulk delimited import
    USDA = "USDA"                    # FoodData Central
    OPEN_FOOD_FACTS = "OpenFoodFacts"
    HEURISTIC = "Heuristic"
    CUSTOM = "CUSTOM"                # user created


class OriginKind(str, Enum):
    MEASURED = "measured"
    ESTIMATED = "estimated"
    CALCULATED = "calculated"
    HEURISTIC = "heuristic"


class Severity(str, Enum):
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class FodmapRating(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    UNKNOWN = "Unknown"


FODMAP_VALUES = tuple(r.value for r in FodmapRating)
PROCESSING_CLASSES = (1, 2, 3, 4)
GI_RANGE = (0.0, 110.0)

# provenance keys
NUTRITION = "nutrition"
GLYCEMIC_INDEX = "glycemicIndex"
GLYCEMIC_LOAD = "glycemicLoad"
FODMAP = "fodmap"
PROCESSING_CLASS = "processingClass"

# grams per unit when a record carries no matching portion unit
FALLBACK_UNIT_GRAMS: Dict[str, float] = {
    "katori": 80,
    "spoon": 15,
    "roti": 45,
    "idli": 120,
    "cup": 200,
    "handful": 30,
    "teaspoon": 5,
    "tablespoon": 15,
}


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _num(value: Any) -> float:
    """Coerce provider values to a non-null float; None/blank/garbage -> 0."""
    if value is None or value == "":
        return 0.0
    try:
        out = float(value)
    except (TypeError, ValueError):
        return 0.0
    return out if out == out else 0.0  # NaN


@dataclass
class Nutrients:
    """Per-100 g values. Core: energy + three macros; the rest default to 0."""
    energy_kcal: float = 0.0
    protein_g: float = 0.0
    fat_g: float = 0.0
    carbs_g: float = 0.0
    fiber_g: float = 0.0
    sugar_g: float = 0.0
    vitamin_c_mg: float = 0.0
    zinc_mg: float = 0.0
    selenium_ug: float = 0.0
    iron_mg: float = 0.0
    omega3_g: float = 0.0

    def __post_init__(self):
        for f in fields(self):
            setattr(self, f.name, _num(getattr(self, f.name)))

    def atwater_kcal(self) -> float:
        return 4 * self.protein_g + 4 * self.carbs_g + 9 * self.fat_g

    def has_complete_macros(self) -> bool:
        return all(v > 0 for v in (self.energy_kcal, self.protein_g, self.fat_g, self.carbs_g))

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @staticmethod
    def from_dict(d: Optional[Dict[str, Any]]) -> "Nutrients":
        d = d or {}
        known = {f.name for f in fields(Nutrients)}
        return Nutrients(**{k: v for k, v in d.items() if k in known})


@dataclass
class PortionUnit:
    unit: str
    grams: float
    is_default: bool = False
    description: str = ""

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "PortionUnit":
        return PortionUnit(unit=d["unit"], grams=float(d["grams"]),
                           is_default=bool(d.get("is_default", False)),
                           description=d.get("description") or "")


@dataclass
class Provenance:
    source: str
    origin_kind: str = OriginKind.ESTIMATED.value
    confidence: float = 0.5
    last_verified_at: Optional[str] = None
    note: str = ""

    def __post_init__(self):
        self.source = _plain(self.source)
        self.origin_kind = _plain(self.origin_kind)
        self.confidence = min(1.0, max(0.0, float(self.confidence)))
        if isinstance(self.last_verified_at, datetime):
            self.last_verified_at = self.last_verified_at.isoformat()

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Provenance":
        return Provenance(source=d.get("source") or "", origin_kind=d.get("origin_kind") or OriginKind.ESTIMATED.value,
                          confidence=d.get("confidence", 0.5), last_verified_at=d.get("last_verified_at"),
                          note=d.get("note") or "")


@dataclass
class QualityFlag:
    flag_code: str
    severity: str
    message: str
    observed_value: Any = None
    threshold: Any = None

    def __post_init__(self):
        self.severity = _plain(self.severity)

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "QualityFlag":
        return QualityFlag(flag_code=d["flag_code"], severity=d.get("severity", Severity.WARN.value),
                           message=d.get("message") or "", observed_value=d.get("observed_value"),
                           threshold=d.get("threshold"))


@dataclass
class CatalogRecord:
    name: str
    source: str
    nutrients: Nutrients = field(default_factory=Nutrients)
    name_key: str = ""
    external_id: Optional[str] = None
    aliases: List[str] = field(default_factory=list)
    portion_default_grams: float = 100.0
    portion_units: List[PortionUnit] = field(default_factory=list)
    glycemic_index: Optional[float] = None
    glycemic_load: Optional[float] = None
    fodmap_rating: Optional[str] = None
    processing_class: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    provenance: Dict[str, Provenance] = field(default_factory=dict)
    quality_flags: List[QualityFlag] = field(default_factory=list)

    def __post_init__(self):
        self.name = (self.name or "").strip()
        self.source = _plain(self.source)
        if not self.name_key:
            self.name_key = fold_name(self.name)
        self.fodmap_rating = _plain(self.fodmap_rating)
        if self.external_id is not None:
            self.external_id = str(self.external_id)

    # --- aliases / tags ------------------------------------------------------

    def add_alias(self, alias: Optional[str]) -> None:
        alias = (alias or "").strip()
        if alias and alias not in self.aliases:
            self.aliases.append(alias)

    def add_tag(self, tag: Optional[str]) -> None:
        tag = (tag or "").strip()
        if tag and not self.has_tag(tag):
            self.tags.append(tag)

    def has_tag(self, tag: str) -> bool:
        t = tag.lower()
        return any(x.lower() == t for x in self.tags)

    # --- portions ------------------------------------------------------------

    def add_portion_unit(self, unit: PortionUnit) -> bool:
        if any(u.unit == unit.unit for u in self.portion_units):
            return False
        self.portion_units.append(unit)
        return True

    def default_portion_unit(self) -> Optional[PortionUnit]:
        for u in self.portion_units:
            if u.is_default:
                return u
        return self.portion_units[0] if self.portion_units else None

    def convert_unit_to_grams(self, unit: str, quantity: float = 1) -> float:
        for u in self.portion_units:
            if u.unit == unit:
                return u.grams * quantity
        return FALLBACK_UNIT_GRAMS.get(unit, self.portion_default_grams) * quantity

    # --- provenance / flags --------------------------------------------------

    def set_provenance(self, key: str, prov: Provenance) -> None:
        self.provenance[key] = prov

    def origin_of(self, key: str) -> Optional[str]:
        prov = self.provenance.get(key)
        return prov.origin_kind if prov else None

    def add_flag(self, flag: QualityFlag) -> None:
        self.quality_flags.append(flag)

    def flags_at(self, severity: str) -> List[QualityFlag]:
        severity = _plain(severity)
        return [f for f in self.quality_flags if f.severity == severity]

    def has_complete_macros(self) -> bool:
        return self.nutrients.has_complete_macros()

    # --- serialization -------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "name_key": self.name_key,
            "source": self.source,
            "external_id": self.external_id,
            "aliases": list(self.aliases),
            "portion_default_grams": self.portion_default_grams,
            "portion_units": [asdict(u) for u in self.portion_units],
            "nutrients": self.nutrients.to_dict(),
            "glycemic_index": self.glycemic_index,
            "glycemic_load": self.glycemic_load,
            "fodmap_rating": self.fodmap_rating,
            "processing_class": self.processing_class,
            "tags": list(self.tags),
            "provenance": {k: asdict(v) for k, v in self.provenance.items()},
            "quality_flags": [asdict(f) for f in self.quality_flags],
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CatalogRecord":
        return CatalogRecord(
            name=d["name"],
            source=d["source"],
            name_key=d.get("name_key") or "",
            external_id=d.get("external_id"),
            aliases=list(d.get("aliases") or []),
            portion_default_grams=float(d.get("portion_default_grams") or 100.0),
            portion_units=[PortionUnit.from_dict(u) for u in d.get("portion_units") or []],
            nutrients=Nutrients.from_dict(d.get("nutrients")),
            glycemic_index=d.get("glycemic_index"),
            glycemic_load=d.get("glycemic_load"),
            fodmap_rating=d.get("fodmap_rating"),
            processing_class=d.get("processing_class"),
            tags=list(d.get("tags") or []),
            provenance={k: Provenance.from_dict(v) for k, v in (d.get("provenance") or {}).items()},
            quality_flags=[QualityFlag.from_dict(f) for f in d.get("quality_flags") or []],
        )
