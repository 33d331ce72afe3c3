import pytest

from pantry.errors import RuleError
from pantry.model import CatalogRecord
from pantry.providers import apply_portion_units
from pantry.rules import default_table, load_tables, parse_tables

def _units(rec):
    return [(u.unit, u.grams) for u in rec.portion_units]

class TestPortionUnitRules:
    def test_flatbread(self):
        rec = apply_portion_units(CatalogRecord(name="Phulka", source="IFCT", portion_default_grams=40))
        assert _units(rec) == [("grams", 40), ("roti", 45), ("piece", 45)]
        assert rec.default_portion_unit().unit == "grams"

    def test_unit_never_added_twice(self):
        rec = apply_portion_units(CatalogRecord(name="Dal rice", source="IFCT"))
        names = [u.unit for u in rec.portion_units]
        assert names == ["grams", "katori", "cup"]

    def test_no_match_keeps_only_grams(self):
        rec = apply_portion_units(CatalogRecord(name="Paneer", source="IFCT"))
        assert _units(rec) == [("grams", 100)]

class TestDerivationTables:
    def test_first_match_wins(self):
        gi = default_table("glycemic_index")
        assert gi.evaluate("Brown rice", ["grain", "wholegrain"]) == 45
        assert gi.evaluate("White rice", ["grain"]) == 65
        assert gi.evaluate("Mystery", []) == 55

    def test_tags_case_insensitive(self):
        assert default_table("fodmap").evaluate("Onion", ["Onion"]) == "High"
        assert default_table("processing_class").evaluate("Chips", ["Ultra-Processed"]) == 4

    def test_unknown_table(self):
        with pytest.raises(RuleError):
            default_table("nope")

class TestRuleSchema:
    def test_rule_without_pattern_rejected(self):
        with pytest.raises(RuleError):
            parse_tables({"t": {"rules": [{"then": 1}]}})

    def test_bad_mode_rejected(self):
        with pytest.raises(RuleError):
            parse_tables({"t": {"mode": "sometimes", "rules": [{"name_contains": ["x"], "then": 1}]}})

    def test_load_from_yaml(self, tmp_path):
        p = tmp_path / "rules.yml"
        p.write_text(
            "spice_level:\n"
            "  default: mild\n"
            "  rules:\n"
            "    - {id: hot, name_contains: [vindaloo, 'Chilli'], then: hot}\n",
            encoding="utf-8",
        )
        table = load_tables(p)["spice_level"]
        assert table.evaluate("Pork Vindaloo") == "hot"
        assert table.evaluate("chilli paneer") == "hot"
        assert table.evaluate("Kheer") == "mild"
