from __future__ import annotations
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List

from ..io import ensure_dir, write_csv
from ..logging import log

TOP_N = 20
REPORT_MD = "seed_qa_report.md"
FAILURES_CSV = "seed_qa_failures.csv"

METRIC_LABELS = [
    ("energy_balance_violations", "Energy balance violations"),
    ("magnitude_warnings", "Magnitude warnings"),
    ("portion_violations", "Portion violations"),
    ("gi_violations", "GI violations"),
    ("enum_violations", "Enum violations"),
    ("negative_values", "Negative values"),
    ("duplicates", "Duplicates"),
]

def _top(title: str, messages: List[str]) -> List[str]:
    if not messages:
        return []
    lines = [f"## {title} (Top {TOP_N})", ""]
    for i, msg in enumerate(messages[:TOP_N], start=1):
        lines.append(f"{i}. {msg}")
    if len(messages) > TOP_N:
        lines.append(f"... and {len(messages) - TOP_N} more")
    lines.append("")
    return lines

def generate_markdown(ctx) -> str:
    qa = ctx.qa
    m = qa.metrics
    lines = [
        "# Seed QA Report",
        "",
        f"Generated: {datetime.now(timezone.utc).isoformat()}",
        f"Status: **{ctx.status().value}**",
        "",
        "## Summary",
        "",
        f"- **Total Items**: {m.get('total_items', 0)}",
        f"- **Errors**: {len(qa.errors)}",
        f"- **Warnings**: {len(qa.warnings)}",
        f"- **Persisted**: {ctx.persisted}",
        "",
        "## Providers",
        "",
    ]
    for name, st in ctx.provider_stats.items():
        lines.append(f"- {name}: {st.get('status')} ({st.get('records', 0)} records, {st.get('failed', 0)} failed)")
    ms = ctx.merge_stats
    lines += [
        "",
        "## Merge",
        "",
        f"- Input: {ms.input}, output: {ms.output}",
        f"- Duplicate groups: {ms.duplicate_groups} ({ms.duplicates_folded} folded)",
        f"- Re-ingested: {ms.reingested}",
        "",
        "## Metrics",
        "",
    ]
    for key, label in METRIC_LABELS:
        lines.append(f"- {label}: {m.get(key, 0)}")
    lines.append("")
    lines += _top("Errors", qa.errors)
    lines += _top("Warnings", qa.warnings)
    return "\n".join(lines)

def failure_rows(ctx) -> List[List[str]]:
    return [["ERROR", e] for e in ctx.qa.errors] + [["WARNING", w] for w in ctx.qa.warnings]

def run(ctx) -> Dict[str, Any]:
    out_dir = Path(ctx.cfg.reports_dir)
    ensure_dir(out_dir)
    md = out_dir / REPORT_MD
    md.write_text(generate_markdown(ctx), encoding="utf-8")
    csv_path = out_dir / FAILURES_CSV
    rows = failure_rows(ctx)
    write_csv(csv_path, ["Type", "Message"], rows)
    ctx.artifacts.update({"report_md": str(md), "failures_csv": str(csv_path)})
    log().info(f"reports written to {out_dir}")
    return {"rows": len(rows)}
