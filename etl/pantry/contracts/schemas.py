# -*- coding: utf-8 -*-
from __future__ import annotations
from typing import Any, Dict, List
from jsonschema import Draft202012Validator

# Seed config overrides (YAML, see SeedConfig.from_file)
CONFIG_SCHEMA: Dict[str, Any] = {
  "title": "Seed config",
  "type": "object",
  "additionalProperties": False,
  "properties": {
    "db_path": {"type": "string"},
    "reports_dir": {"type": "string"},
    "ifct_csv": {"type": "string"},
    "usda_api_key": {"type": ["string", "null"]},
    "usda_queries": {"type": "array", "items": {"type": "string", "minLength": 1}},
    "usda_fdc_ids": {"type": "array", "items": {"type": "integer", "minimum": 1}},
    "usda_page_size": {"type": "integer", "minimum": 1, "maximum": 200},
    "off_disable": {"type": "boolean"},
    "off_barcodes": {"type": "array", "items": {"type": "string", "pattern": "^[0-9]{6,14}$"}},
    "atwater_tolerance": {"type": "number", "exclusiveMinimum": 0},
    "portion_bands": {
      "type": "object",
      "additionalProperties": {
        "type": "array", "items": {"type": "number", "minimum": 0},
        "minItems": 2, "maxItems": 2
      }
    },
    "merge_policy": {"type": "string", "enum": ["first_seen", "source_priority", "confidence"]},
    "provider_delay_s": {"type": "number", "minimum": 0},
    "http_timeout_s": {"type": "number", "exclusiveMinimum": 0},
    "search_deadline_s": {"type": "number", "exclusiveMinimum": 0},
    "promote": {"type": "string", "enum": ["always", "no_errors"]}
  }
}

# Ordered rule tables (rules/*.yml)
RULES_SCHEMA: Dict[str, Any] = {
  "title": "Rule tables",
  "type": "object",
  "minProperties": 1,
  "additionalProperties": {"$ref": "#/$defs/table"},
  "$defs": {
    "table": {
      "type": "object",
      "required": ["rules"],
      "additionalProperties": False,
      "properties": {
        "mode": {"type": "string", "enum": ["first", "all"]},
        "default": {},
        "rules": {"type": "array", "items": {"$ref": "#/$defs/rule"}}
      }
    },
    "rule": {
      "type": "object",
      "required": ["then"],
      "additionalProperties": False,
      "properties": {
        "id": {"type": "string"},
        "name_contains": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "any_tags": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "all_tags": {"type": "array", "items": {"type": "string", "minLength": 1}},
        "then": {},
        "notes": {"type": "string"}
      },
      "anyOf": [
        {"required": ["name_contains"]},
        {"required": ["any_tags"]},
        {"required": ["all_tags"]}
      ]
    }
  }
}

def validate(obj: Any, schema: Dict[str, Any], where: str) -> List[str]:
    """JSON Schema validate `obj`; returns messages prefixed with `where`."""
    validator = Draft202012Validator(schema)
    errors: List[str] = []
    for err in sorted(validator.iter_errors(obj), key=lambda e: list(e.path)):
        loc = "/".join(str(p) for p in err.path)
        errors.append(f"{where}{'/' + loc if loc else ''}: {err.message}")
    return errors

# Custom food payload (see pantry.custom); value ranges are checked separately
CUSTOM_FOOD_SCHEMA: Dict[str, Any] = {
  "title": "Custom food",
  "type": "object",
  "required": ["name", "nutrients"],
  "properties": {
    "name": {"type": "string", "minLength": 1},
    "nutrients": {
      "type": "object",
      "required": ["energy_kcal", "protein_g", "fat_g", "carbs_g"],
      "additionalProperties": {"type": ["number", "null"]}
    },
    "portion_default_grams": {"type": "number"},
    "portion_units": {
      "type": "array",
      "items": {
        "type": "object",
        "required": ["unit", "grams"],
        "properties": {
          "unit": {"type": "string", "minLength": 1},
          "grams": {"type": "number", "exclusiveMinimum": 0},
          "is_default": {"type": "boolean"},
          "description": {"type": "string"}
        }
      }
    },
    "aliases": {"type": "array", "items": {"type": "string"}},
    "tags": {"type": "array", "items": {"type": "string"}},
    "glycemic_index": {"type": ["number", "null"]},
    "fodmap_rating": {"type": "string"},
    "processing_class": {"type": "integer"}
  }
}
