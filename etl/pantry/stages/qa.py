from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..logging import log
from ..model import (CatalogRecord, QualityFlag, Severity, FODMAP_VALUES, GI_RANGE,
                     PROCESSING_CLASSES, GLYCEMIC_INDEX, OriginKind)
from ..shared.normalize import contains_keywords, fold_name
from ..config import DEFAULT_PORTION_BANDS

HIGH_VITAMIN_C_MG = 300.0
HIGH_ZINC_MG = 30.0
LOW_CARB_GI_G = 5.0

METRICS = (
    "total_items",
    "duplicates",
    "energy_balance_violations",
    "magnitude_warnings",
    "portion_violations",
    "gi_violations",
    "enum_violations",
    "negative_values",
)

@dataclass
class QAResults:
    metrics: Dict[str, int] = field(default_factory=lambda: {m: 0 for m in METRICS})
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def bump(self, metric: str, n: int = 1) -> None:
        self.metrics[metric] = self.metrics.get(metric, 0) + n

    def flag(self, rec: CatalogRecord, code: str, severity: Severity, message: str,
             observed: Any = None, threshold: Any = None, metric: Optional[str] = None) -> QualityFlag:
        f = QualityFlag(flag_code=code, severity=severity, message=message,
                        observed_value=observed, threshold=threshold)
        rec.add_flag(f)
        line = f"{code}: {rec.name} [{rec.source}] {message}"
        if f.severity == Severity.ERROR.value:
            self.add_error(line)
        else:
            self.add_warning(line)
        if metric:
            self.bump(metric)
        return f

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {"metrics": dict(self.metrics), "errors": len(self.errors), "warnings": len(self.warnings)}

# --- checks --------------------------------------------------------------------

def check_energy_balance(rec: CatalogRecord, qa: QAResults, tolerance: float = 30.0) -> None:
    computed = rec.nutrients.atwater_kcal()
    diff = abs(rec.nutrients.energy_kcal - computed)
    if diff > tolerance:
        qa.flag(rec, "ENERGY_BALANCE_DEVIATION", Severity.ERROR,
                f"declared {rec.nutrients.energy_kcal:g} kcal vs computed {computed:g} kcal (diff {diff:g} > {tolerance:g})",
                observed=round(diff, 2), threshold=tolerance, metric="energy_balance_violations")

def check_non_negative(rec: CatalogRecord, qa: QAResults) -> None:
    for name, value in rec.nutrients.to_dict().items():
        if value < 0:
            qa.flag(rec, "NEGATIVE_NUTRIENT", Severity.ERROR, f"{name} is negative: {value:g}",
                    observed=value, threshold=0, metric="negative_values")

def check_magnitudes(rec: CatalogRecord, qa: QAResults) -> None:
    n = rec.nutrients
    if n.vitamin_c_mg > HIGH_VITAMIN_C_MG:
        qa.flag(rec, "HIGH_VITAMIN_C", Severity.WARN, f"vitamin C unusually high: {n.vitamin_c_mg:g} mg",
                observed=n.vitamin_c_mg, threshold=HIGH_VITAMIN_C_MG, metric="magnitude_warnings")
    if n.zinc_mg > HIGH_ZINC_MG:
        qa.flag(rec, "HIGH_ZINC", Severity.WARN, f"zinc unusually high: {n.zinc_mg:g} mg",
                observed=n.zinc_mg, threshold=HIGH_ZINC_MG, metric="magnitude_warnings")

def check_portion(rec: CatalogRecord, qa: QAResults, bands: Dict[str, Tuple[float, float]]) -> None:
    key = rec.name_key or fold_name(rec.name)
    g = rec.portion_default_grams
    for kw, (lo, hi) in bands.items():
        if contains_keywords(key, [kw]) and (g < lo or g > hi):
            qa.flag(rec, "PORTION_OUT_OF_BAND", Severity.WARN,
                    f"portion {g:g}g outside expected range {lo:g}-{hi:g}g",
                    observed=g, threshold=[lo, hi], metric="portion_violations")

def check_glycemic_index(rec: CatalogRecord, qa: QAResults) -> None:
    gi = rec.glycemic_index
    if gi is None:
        return
    lo, hi = GI_RANGE
    if gi < lo or gi > hi:
        qa.flag(rec, "GI_OUT_OF_RANGE", Severity.ERROR, f"GI {gi:g} outside valid range {lo:g}-{hi:g}",
                observed=gi, threshold=[lo, hi], metric="gi_violations")
    if rec.origin_of(GLYCEMIC_INDEX) == OriginKind.ESTIMATED.value and rec.nutrients.carbs_g < LOW_CARB_GI_G:
        qa.flag(rec, "LOW_CARB_GI_ESTIMATE", Severity.WARN,
                f"estimated GI {gi:g} with only {rec.nutrients.carbs_g:g} g carbs",
                observed=rec.nutrients.carbs_g, threshold=LOW_CARB_GI_G)

def check_enums(rec: CatalogRecord, qa: QAResults) -> None:
    if rec.fodmap_rating is not None and rec.fodmap_rating not in FODMAP_VALUES:
        qa.flag(rec, "INVALID_FODMAP", Severity.ERROR, f"invalid FODMAP value: {rec.fodmap_rating}",
                observed=rec.fodmap_rating, threshold=list(FODMAP_VALUES), metric="enum_violations")
    pc = rec.processing_class
    if pc is not None and (isinstance(pc, bool) or pc not in PROCESSING_CLASSES):
        qa.flag(rec, "INVALID_PROCESSING_CLASS", Severity.ERROR, f"invalid processing class: {pc}",
                observed=pc, threshold=list(PROCESSING_CLASSES), metric="enum_violations")

def run_checks(records: Iterable[CatalogRecord], qa: Optional[QAResults] = None, tolerance: float = 30.0,
               bands: Optional[Dict[str, Tuple[float, float]]] = None) -> QAResults:
    qa = qa if qa is not None else QAResults()
    bands = DEFAULT_PORTION_BANDS if bands is None else bands
    for rec in records:
        qa.bump("total_items")
        check_energy_balance(rec, qa, tolerance)
        check_non_negative(rec, qa)
        check_magnitudes(rec, qa)
        check_portion(rec, qa, bands)
        check_glycemic_index(rec, qa)
        check_enums(rec, qa)
    log().info(f"QA: {len(qa.errors)} errors, {len(qa.warnings)} warnings")
    return qa

def run(ctx) -> Dict[str, Any]:
    run_checks(ctx.records, ctx.qa, tolerance=ctx.cfg.atwater_tolerance, bands=ctx.cfg.portion_bands)
    return {"errors": len(ctx.qa.errors), "warnings": len(ctx.qa.warnings)}
