from __future__ import annotations
from typing import Any, Dict

from ..db import SqliteCatalogStore
from ..logging import log

def run(ctx) -> Dict[str, Any]:
    """
    Swap the processed sources into the catalog. Sources that produced no
    records this run keep their previous rows. Store errors propagate and
    fail the run.
    """
    if ctx.cfg.promote == "no_errors" and ctx.qa.failed:
        log().warning(f"persist: {len(ctx.qa.errors)} QA errors, promotion skipped (promote=no_errors)")
        return {"skipped": True, "reason": "QA errors"}
    if ctx.store is None:
        ctx.store = SqliteCatalogStore(ctx.cfg.db_path)
    sources = sorted({r.source for r in ctx.records})
    if not sources:
        log().warning("persist: no records, catalog left unchanged")
        return {"persisted": 0, "sources": []}
    n = ctx.store.replace_sources(ctx.records, sources)
    ctx.persisted = n
    log().info(f"persist: {n} records for {', '.join(sources)}")
    return {"persisted": n, "sources": sources}
