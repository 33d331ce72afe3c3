#!/usr/bin/env python3
"""
Tests for the catalog record model
"""
from pantry.model import (CatalogRecord, Nutrients, PortionUnit, Provenance, QualityFlag, Severity,
                          Source, OriginKind, NUTRITION)

class TestNutrients:
    def test_missing_values_default_to_zero(self):
        n = Nutrients(energy_kcal=None, protein_g="abc", fat_g="", carbs_g=float("nan"))
        assert n.energy_kcal == 0 and n.protein_g == 0 and n.fat_g == 0 and n.carbs_g == 0
        assert n.zinc_mg == 0.0

    def test_atwater(self):
        assert Nutrients(protein_g=10, carbs_g=10, fat_g=10).atwater_kcal() == 170

    def test_complete_macros(self):
        assert Nutrients(energy_kcal=100, protein_g=1, fat_g=1, carbs_g=20).has_complete_macros()
        assert not Nutrients(energy_kcal=100, protein_g=1, fat_g=0, carbs_g=20).has_complete_macros()

    def test_from_dict_ignores_unknown_keys(self):
        n = Nutrients.from_dict({"energy_kcal": "52", "sodium_mg": 3})
        assert n.energy_kcal == 52.0

class TestCatalogRecord:
    def test_name_key_from_name(self):
        rec = CatalogRecord(name="  Roti, Whole Wheat ", source=Source.IFCT)
        assert rec.name == "Roti, Whole Wheat"
        assert rec.name_key == "roti whole wheat"
        assert rec.source == "IFCT"

    def test_aliases_deduplicated_in_order(self):
        rec = CatalogRecord(name="Roti", source="IFCT")
        for a in ["Chapati", "Phulka", "Chapati", "", None]:
            rec.add_alias(a)
        assert rec.aliases == ["Chapati", "Phulka"]

    def test_portion_units(self):
        rec = CatalogRecord(name="Idli", source="IFCT", portion_default_grams=120)
        assert rec.add_portion_unit(PortionUnit("idli", 120, is_default=True))
        assert not rec.add_portion_unit(PortionUnit("idli", 100))
        rec.add_portion_unit(PortionUnit("piece", 110))
        assert rec.default_portion_unit().unit == "idli"
        assert rec.convert_unit_to_grams("piece", 2) == 220
        assert rec.convert_unit_to_grams("katori") == 80      # fallback table
        assert rec.convert_unit_to_grams("bowl", 2) == 240    # default portion

    def test_provenance_confidence_clamped(self):
        p = Provenance(source=Source.USDA, origin_kind=OriginKind.MEASURED, confidence=1.7)
        assert p.confidence == 1.0 and p.origin_kind == "measured" and p.source == "USDA"

    def test_serialization_round_trip(self):
        rec = CatalogRecord(name="Banana", source="IFCT", external_id=42,
                            nutrients=Nutrients(energy_kcal=89, carbs_g=22.8),
                            tags=["fruit"], fodmap_rating="Low", processing_class=1)
        rec.add_portion_unit(PortionUnit("grams", 118, True))
        rec.set_provenance(NUTRITION, Provenance("IFCT", "measured", 0.9))
        rec.add_flag(QualityFlag("HIGH_ZINC", Severity.WARN, "zinc", 31, 30))
        back = CatalogRecord.from_dict(rec.to_dict())
        assert back == rec
        assert back.external_id == "42"
        assert back.flags_at("warn")[0].flag_code == "HIGH_ZINC"
