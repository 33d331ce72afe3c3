from __future__ import annotations
from typing import Any, Dict, List

from ..logging import log
from ..model import CatalogRecord

def run(ctx) -> Dict[str, Any]:
    """Concatenate adapter output in provider order. A failing adapter contributes nothing."""
    records: List[CatalogRecord] = []
    for p in ctx.providers:
        try:
            got = p.ingest()
        except Exception as e:
            log().error(f"{p.name}: ingest failed: {e}")
            ctx.qa.add_warning(f"PROVIDER {p.name}: ingest failed: {e}")
            ctx.provider_stats[p.name] = {**p.stats.to_dict(), "status": "error", "error": str(e), "records": 0}
            continue
        ctx.provider_stats[p.name] = {**p.stats.to_dict(), "status": "ok", "records": len(got)}
        if p.stats.failed:
            ctx.qa.add_warning(f"PROVIDER {p.name}: {p.stats.failed} item(s) failed and were skipped")
        records.extend(got)
    ctx.records = records
    return {"records": len(records), "providers": len(ctx.providers)}
