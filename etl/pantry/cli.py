#!/usr/bin/env python3
from __future__ import annotations
import argparse, json, sys
from pathlib import Path
from typing import List, Optional

from rich.table import Table
from rich.text import Text

from .config import MERGE_POLICIES, SeedConfig
from .custom import create_custom_food
from .dag import PipelineRunner, RunResult, RunStatus, StageReport
from .db import SqliteCatalogStore
from .errors import ConfigError, CustomFoodError, PantryError
from .io import read_json
from .logging import console, log, set_verbosity
from .providers import default_providers
from .search import SCOPES, SearchEngine

def print_stage(report: StageReport):
    """Print one finished stage"""
    if report.status == "ok":
        text = Text(f"  ✓ {report.name} in {report.duration_ms:.0f}ms", style="green")
    elif report.status == "skipped":
        text = Text(f"  ⚠️ {report.name} skipped", style="yellow")
    else:
        text = Text(f"  ❌ {report.name} failed: {report.error}", style="red bold")
    console().print(text)

def print_error(message: str):
    console().print(Text(f"❌ {message}", style="red bold"))

def print_summary(result: RunResult):
    style = {RunStatus.CLEAN: "green bold", RunStatus.WARNINGS: "yellow bold"}.get(result.status, "red bold")
    console().print(Text(
        f"Seed {result.status.value}: {result.metrics.get('total_items', 0)} items, "
        f"{len(result.errors)} errors, {len(result.warnings)} warnings, {result.persisted} persisted",
        style=style,
    ))
    for key in ("report_md", "failures_csv", "run_json"):
        if key in result.artifacts:
            console().print(f"  {result.artifacts[key]}", style="dim")

def _config(args) -> SeedConfig:
    cfg = SeedConfig.from_env()
    if getattr(args, "config", None):
        cfg = cfg.with_file(Path(args.config))
    overrides = {}
    if getattr(args, "db", None):
        overrides["db_path"] = args.db
    if getattr(args, "csv", None):
        overrides["ifct_csv"] = args.csv
    if getattr(args, "reports", None):
        overrides["reports_dir"] = args.reports
    if getattr(args, "merge_policy", None):
        overrides["merge_policy"] = args.merge_policy
    return cfg.with_overrides(**overrides) if overrides else cfg

def cmd_seed(args) -> int:
    cfg = _config(args)
    cfg.ensure_dirs()
    console().print(Text("🔄 Seeding nutrition catalog...", style="blue bold"))
    providers = default_providers(cfg, usda=not args.no_usda, off=not args.no_off)
    result = PipelineRunner(cfg, providers=providers, on_stage=print_stage).run()
    print_summary(result)
    return result.exit_code

def cmd_search(args) -> int:
    cfg = _config(args)
    store = SqliteCatalogStore(cfg.db_path) if cfg.db_path.exists() else None
    if store is None:
        log().warning(f"catalog {cfg.db_path} not found, local results disabled")
    engine = SearchEngine.from_config(cfg, store)
    results = engine.search(args.query, source_scope=args.source, limit=args.limit)
    if args.json:
        print(json.dumps([r.to_dict() for r in results], ensure_ascii=False, indent=2))
        return 0
    table = Table(title=f"{len(results)} result(s) for {args.query!r}")
    for col in ("Name", "Source", "Score", "kcal", "P", "F", "C"):
        table.add_column(col)
    for r in results:
        n = r.record.nutrients
        table.add_row(r.name, r.source, f"{r.relevance:.2f}", f"{n.energy_kcal:g}",
                      f"{n.protein_g:g}", f"{n.fat_g:g}", f"{n.carbs_g:g}")
    console().print(table)
    return 0

def cmd_custom(args) -> int:
    cfg = _config(args)
    cfg.ensure_dirs()
    store = SqliteCatalogStore(cfg.db_path)
    rec = create_custom_food(store, read_json(Path(args.payload)))
    console().print(Text(f"✓ created {rec.name} ({rec.name_key})", style="green"))
    for f in rec.quality_flags:
        console().print(Text(f"  ⚠️ {f.flag_code}: {f.message}", style="yellow"))
    return 0

def main(argv: Optional[List[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="pantry", description="Nutrition catalog seeding and food search")
    sub = ap.add_subparsers(dest="cmd", required=True)

    seed = sub.add_parser("seed", help="Run the seed pipeline")
    seed.add_argument("--csv", help="IFCT seed CSV")
    seed.add_argument("--db", help="SQLite catalog path")
    seed.add_argument("--reports", help="Reports directory")
    seed.add_argument("--config", help="YAML config overrides")
    seed.add_argument("--merge-policy", choices=MERGE_POLICIES)
    seed.add_argument("--no-usda", action="store_true", help="Skip FoodData Central")
    seed.add_argument("--no-off", action="store_true", help="Skip Open Food Facts")
    seed.add_argument("--verbose", action="store_true")

    search = sub.add_parser("search", help="Search the catalog and providers")
    search.add_argument("query")
    search.add_argument("--source", choices=SCOPES, default="combined")
    search.add_argument("--limit", type=int, default=20)
    search.add_argument("--db", help="SQLite catalog path")
    search.add_argument("--config", help="YAML config overrides")
    search.add_argument("--json", action="store_true", help="Print results as JSON")

    custom = sub.add_parser("custom", help="Create a custom food from a JSON payload")
    custom.add_argument("payload", help="JSON file")
    custom.add_argument("--db", help="SQLite catalog path")

    args = ap.parse_args(argv)
    set_verbosity(getattr(args, "verbose", False))

    handlers = {"seed": cmd_seed, "search": cmd_search, "custom": cmd_custom}
    try:
        return handlers[args.cmd](args)
    except ConfigError as e:
        print_error(f"config: {e}")
        return 2
    except (CustomFoodError, ValueError) as e:
        print_error(str(e))
        return 1
    except PantryError as e:
        print_error(str(e))
        return 2

if __name__ == "__main__":
    sys.exit(main())
