#!/usr/bin/env python3
"""
Tests for the QA validator checks
"""
from conftest import make_record
from pantry.model import GLYCEMIC_INDEX, OriginKind, Provenance
from pantry.stages.qa import QAResults, run_checks

def _codes(rec):
    return [f.flag_code for f in rec.quality_flags]

class TestEnergyBalance:
    def test_deviation_above_tolerance_is_error(self):
        rec = make_record("Test food", kcal=250, protein=10, carbs=10, fat=10)
        qa = run_checks([rec])
        assert "ENERGY_BALANCE_DEVIATION" in _codes(rec)
        assert rec.quality_flags[0].observed_value == 80
        assert qa.metrics["energy_balance_violations"] == 1
        assert qa.failed

    def test_within_tolerance(self):
        rec = make_record("Test food", kcal=180, protein=10, carbs=10, fat=10)
        qa = run_checks([rec])
        assert rec.quality_flags == []
        assert not qa.errors

    def test_custom_tolerance(self):
        rec = make_record("Test food", kcal=180, protein=10, carbs=10, fat=10)
        run_checks([rec], tolerance=5)
        assert "ENERGY_BALANCE_DEVIATION" in _codes(rec)

class TestEnums:
    def test_invalid_fodmap(self):
        rec = make_record("Weird", fodmap_rating="Extreme")
        qa = run_checks([rec])
        assert "INVALID_FODMAP" in _codes(rec)
        assert qa.metrics["enum_violations"] >= 1
        assert len(qa.errors) >= 1

    def test_invalid_processing_class(self):
        rec = make_record("Weird", processing_class=7)
        qa = run_checks([rec])
        assert "INVALID_PROCESSING_CLASS" in _codes(rec)
        assert qa.metrics["enum_violations"] == 1

    def test_valid_values_pass(self):
        rec = make_record("Fine", fodmap_rating="Low", processing_class=2)
        assert run_checks([rec]).errors == []

def test_magnitude_warnings():
    rec = make_record("Amla", kcal=170)
    rec.nutrients.vitamin_c_mg = 600
    rec.nutrients.zinc_mg = 31
    qa = run_checks([rec])
    assert _codes(rec) == ["HIGH_VITAMIN_C", "HIGH_ZINC"]
    assert qa.metrics["magnitude_warnings"] == 2
    assert not qa.failed and len(qa.warnings) == 2

def test_portion_band():
    rec = make_record("Tandoori roti", portion_default_grams=80)
    qa = run_checks([rec])
    assert "PORTION_OUT_OF_BAND" in _codes(rec)
    assert rec.quality_flags[0].threshold == [35, 60]
    assert qa.metrics["portion_violations"] == 1

def test_portion_band_configurable():
    rec = make_record("Tandoori roti", portion_default_grams=80)
    run_checks([rec], bands={"roti": (30, 90)})
    assert rec.quality_flags == []

class TestGlycemicIndex:
    def test_out_of_range(self):
        rec = make_record("Glucose", glycemic_index=120.0)
        qa = run_checks([rec])
        assert "GI_OUT_OF_RANGE" in _codes(rec)
        assert qa.metrics["gi_violations"] == 1

    def test_estimated_on_low_carb_food(self):
        rec = make_record("Cheese", kcal=170, carbs=2, protein=12, fat=12, glycemic_index=55.0)
        rec.nutrients.energy_kcal = rec.nutrients.atwater_kcal()
        rec.set_provenance(GLYCEMIC_INDEX, Provenance("Heuristic", OriginKind.ESTIMATED, 0.6))
        qa = run_checks([rec])
        assert _codes(rec) == ["LOW_CARB_GI_ESTIMATE"]
        assert qa.warnings and not qa.errors

def test_total_items_counted():
    qa = QAResults()
    run_checks([make_record("A"), make_record("B")], qa)
    assert qa.metrics["total_items"] == 2

def test_negative_nutrient_is_error_not_clamped():
    rec = make_record("Broken row", kcal=170)
    rec.nutrients.iron_mg = -2.5
    qa = run_checks([rec])
    assert _codes(rec) == ["NEGATIVE_NUTRIENT"]
    assert rec.nutrients.iron_mg == -2.5
    assert qa.metrics["negative_values"] == 1
    assert qa.failed and "iron_mg" in qa.errors[0]

def test_portion_band_matches_folded_keyword():
    rec = make_record("Idli (rava)", portion_default_grams=40)
    run_checks([rec], bands={"IDLI": (80, 180)})
    assert _codes(rec) == ["PORTION_OUT_OF_BAND"]
