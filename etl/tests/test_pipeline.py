#!/usr/bin/env python3
"""
End-to-end tests for the seed pipeline runner
"""
import csv
import json

from conftest import BrokenStore, FailingProvider, StaticProvider, make_record
from pantry.dag import PipelineRunner, RunStatus, Stage, default_stages
from pantry.db import SqliteCatalogStore
from pantry.providers import IfctProvider

def _run(cfg, providers, store=None, stages=None):
    store = store if store is not None else SqliteCatalogStore(cfg.db_path)
    return PipelineRunner(cfg, store=store, providers=providers, stages=stages).run(), store

class TestPipelineRunner:
    def test_clean_run(self, cfg):
        result, store = _run(cfg, [IfctProvider(cfg.ifct_csv)])
        assert result.status == RunStatus.CLEAN
        assert result.exit_code == 0
        assert [s.status for s in result.stages] == ["ok"] * 6
        assert result.persisted == 4
        assert store.count("IFCT") == 4
        roti = store.find_by_key("roti whole wheat", "IFCT")
        assert roti.glycemic_index == 45 and roti.fodmap_rating == "Unknown"

    def test_failing_adapter_does_not_stop_report(self, cfg):
        usda = StaticProvider("USDA", [make_record("Oats", source="USDA")])
        result, store = _run(cfg, [IfctProvider(cfg.ifct_csv), FailingProvider(), usda])
        assert result.stage("report").status == "ok"
        assert result.status == RunStatus.WARNINGS
        assert result.exit_code == 0
        assert result.providers["Broken"]["status"] == "error"
        assert store.count() == 5
        assert (cfg.reports_dir / "seed_qa_report.md").exists()
        assert any("Broken" in w for w in result.warnings)

    def test_cross_source_duplicate_reported(self, cfg):
        usda = StaticProvider("USDA", [make_record("BANANA", source="USDA")])
        result, store = _run(cfg, [IfctProvider(cfg.ifct_csv), usda])
        assert result.metrics["duplicates"] == 1
        assert result.merge["duplicate_groups"] == 1
        banana = store.list_by_key("banana")
        assert len(banana) == 1 and banana[0].source == "IFCT"
        assert set(banana[0].aliases) >= {"Banana", "BANANA"}

    def test_enum_violation_fails_run(self, cfg):
        bad = StaticProvider("USDA", [make_record("Mystery bar", source="USDA", fodmap_rating="Extreme")])
        result, _ = _run(cfg, [bad])
        assert result.status == RunStatus.FAILED
        assert result.exit_code == 1
        assert result.metrics["enum_violations"] >= 1
        assert len(result.errors) >= 1

    def test_persistence_failure_is_fatal(self, cfg):
        result, _ = _run(cfg, [IfctProvider(cfg.ifct_csv)], store=BrokenStore())
        assert result.status == RunStatus.FAILED
        assert result.exit_code == 2
        assert result.stage("persist").status == "error"
        assert result.stage("report").status == "ok"
        run = json.loads((cfg.reports_dir / "run.json").read_text())
        assert run["status"] == "failed" and run["exit_code"] == 2

    def test_promote_no_errors_skips_persist(self, cfg):
        cfg = cfg.with_overrides(promote="no_errors")
        bad = StaticProvider("USDA", [make_record("Odd", source="USDA", kcal=900)])
        result, store = _run(cfg, [bad])
        assert result.stage("persist").status == "skipped"
        assert store.count() == 0
        assert result.exit_code == 1

    def test_stage_error_passes_records_through(self, cfg):
        def boom(ctx):
            raise RuntimeError("rule table corrupt")
        stages = default_stages()
        stages[2] = Stage("derive", "Derive attributes", boom)
        result, store = _run(cfg, [IfctProvider(cfg.ifct_csv)], stages=stages)
        assert result.stage("derive").status == "error"
        assert result.stage("derive").error == "rule table corrupt"
        assert store.count() == 4
        assert result.status == RunStatus.FAILED and result.exit_code == 1

    def test_second_run_replaces_processed_sources_only(self, cfg):
        store = SqliteCatalogStore(cfg.db_path)
        store.upsert(make_record("My smoothie", source="CUSTOM"))
        _run(cfg, [IfctProvider(cfg.ifct_csv)], store=store)
        _run(cfg, [IfctProvider(cfg.ifct_csv)], store=store)
        assert store.count("IFCT") == 4
        assert store.count("CUSTOM") == 1

class TestReports:
    def test_markdown_and_csv(self, cfg):
        bad = StaticProvider("USDA", [make_record("Roti, stuffed", source="USDA", kcal=400)])
        result, _ = _run(cfg, [bad])
        md = (cfg.reports_dir / "seed_qa_report.md").read_text()
        assert "# Seed QA Report" in md
        assert "## Errors (Top 20)" in md
        assert "Energy balance violations: 1" in md

        with (cfg.reports_dir / "seed_qa_failures.csv").open(newline="") as f:
            rows = list(csv.reader(f))
        assert rows[0] == ["Type", "Message"]
        assert all(len(r) == 2 for r in rows)
        assert rows[1][0] == "ERROR"
        assert "Roti, stuffed" in rows[1][1]

    def test_top_twenty_only(self, cfg):
        recs = [make_record(f"Bad food {i}", source="USDA", kcal=999) for i in range(25)]
        _run(cfg, [StaticProvider("USDA", recs)])
        md = (cfg.reports_dir / "seed_qa_report.md").read_text()
        assert "20. ENERGY_BALANCE_DEVIATION" in md
        assert "21. " not in md
        assert "... and 5 more" in md

    def test_run_json(self, cfg):
        result, _ = _run(cfg, [IfctProvider(cfg.ifct_csv)])
        run = json.loads((cfg.reports_dir / "run.json").read_text())
        assert run["status"] == "clean"
        assert [s["id"] for s in run["stages"]] == [
            "ingest", "normalize", "derive", "validate", "persist", "report"]
        assert run["metrics"]["total_items"] == 4
        assert result.artifacts["run_json"].endswith("run.json")
