from __future__ import annotations
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
import time

from .config import SeedConfig
from .db import CatalogStore
from .io import write_json
from .logging import log
from .model import CatalogRecord
from .providers import Provider, default_providers
from .stages.derive import DeriveStats
from .stages.merge import MergeStats
from .stages.qa import QAResults

class RunStatus(str, Enum):
    CLEAN = "clean"
    WARNINGS = "warnings"
    FAILED = "failed"

@dataclass
class Stage:
    id: str
    name: str
    run: Callable[["Context"], Optional[Dict[str, Any]]] = lambda ctx: None
    fatal: bool = False     # failure stops the run (later stages skipped)
    always: bool = False    # runs even after a fatal failure

@dataclass
class StageReport:
    id: str
    name: str
    status: str             # ok | error | skipped
    duration_ms: float = 0.0
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        extra = out.pop("extra")
        out.update(extra)
        return out

@dataclass
class Context:
    cfg: SeedConfig
    store: Optional[CatalogStore] = None
    providers: List[Provider] = field(default_factory=list)
    records: List[CatalogRecord] = field(default_factory=list)
    qa: QAResults = field(default_factory=QAResults)
    merge_stats: MergeStats = field(default_factory=MergeStats)
    derive_stats: DeriveStats = field(default_factory=DeriveStats)
    provider_stats: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    stage_reports: List[StageReport] = field(default_factory=list)
    artifacts: Dict[str, str] = field(default_factory=dict)
    persisted: int = 0
    fatal: Optional[str] = None

    def status(self) -> RunStatus:
        if self.fatal or self.qa.failed:
            return RunStatus.FAILED
        if self.qa.warnings:
            return RunStatus.WARNINGS
        return RunStatus.CLEAN

@dataclass
class RunResult:
    status: RunStatus
    stages: List[StageReport]
    metrics: Dict[str, int]
    errors: List[str]
    warnings: List[str]
    merge: Dict[str, int] = field(default_factory=dict)
    derive: Dict[str, int] = field(default_factory=dict)
    providers: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    persisted: int = 0
    fatal: Optional[str] = None
    artifacts: Dict[str, str] = field(default_factory=dict)
    built_at: int = 0

    @property
    def exit_code(self) -> int:
        if self.fatal:
            return 2
        return 1 if self.status == RunStatus.FAILED else 0

    def stage(self, stage_id: str) -> Optional[StageReport]:
        return next((s for s in self.stages if s.id == stage_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "exit_code": self.exit_code,
            "built_at": self.built_at,
            "stages": [s.to_dict() for s in self.stages],
            "metrics": dict(self.metrics),
            "errors": len(self.errors),
            "warnings": len(self.warnings),
            "merge": self.merge,
            "derive": self.derive,
            "providers": self.providers,
            "persisted": self.persisted,
            "fatal": self.fatal,
            "artifacts": self.artifacts,
        }

def default_stages() -> List[Stage]:
    # Imported here so stage modules can import dag types without cycles
    from .stages import ingest, merge, derive, qa, persist, report
    return [
        Stage("ingest", "Ingest providers", ingest.run),
        Stage("normalize", "Normalize + merge", merge.run),
        Stage("derive", "Derive attributes", derive.run),
        Stage("validate", "QA checks", qa.run),
        Stage("persist", "Persist catalog", persist.run, fatal=True),
        Stage("report", "Write reports", report.run, always=True),
    ]

class PipelineRunner:
    """
    Runs the seed stages in order over one shared Context. A stage that
    raises is reported as `error` and the run moves on with whatever the
    previous stage left in `ctx.records`; a fatal stage failure skips
    everything after it except `always` stages. `run()` never raises.
    """

    def __init__(self, cfg: SeedConfig, store: Optional[CatalogStore] = None,
                 providers: Optional[List[Provider]] = None, stages: Optional[List[Stage]] = None,
                 on_stage: Optional[Callable[[StageReport], None]] = None):
        self.cfg = cfg
        self.store = store
        self.providers = providers if providers is not None else default_providers(cfg)
        self.stages = stages if stages is not None else default_stages()
        self.on_stage = on_stage

    def run(self) -> RunResult:
        ctx = Context(cfg=self.cfg, store=self.store, providers=list(self.providers))
        for s in self.stages:
            if ctx.fatal and not s.always:
                self._record(ctx, StageReport(s.id, s.name, "skipped", extra={"reason": "previous fatal error"}))
                continue
            t0 = time.perf_counter()
            try:
                extra = s.run(ctx) or {}
                status = "skipped" if extra.pop("skipped", False) else "ok"
                self._record(ctx, StageReport(s.id, s.name, status, self._ms(t0), extra=extra))
            except Exception as e:
                log().exception(f"stage {s.id} failed: {e}")
                if s.fatal:
                    ctx.fatal = f"{s.id}: {e}"
                else:
                    ctx.qa.add_error(f"STAGE {s.id}: {e}")
                self._record(ctx, StageReport(s.id, s.name, "error", self._ms(t0), error=str(e)))

        result = RunResult(
            status=ctx.status(),
            stages=ctx.stage_reports,
            metrics=dict(ctx.qa.metrics),
            errors=list(ctx.qa.errors),
            warnings=list(ctx.qa.warnings),
            merge=ctx.merge_stats.to_dict(),
            derive=ctx.derive_stats.to_dict(),
            providers=ctx.provider_stats,
            persisted=ctx.persisted,
            fatal=ctx.fatal,
            artifacts=ctx.artifacts,
            built_at=int(time.time()),
        )
        run_json = self.cfg.reports_dir / "run.json"
        try:
            write_json(run_json, result.to_dict())
            result.artifacts["run_json"] = str(run_json)
        except OSError as e:
            log().error(f"cannot write {run_json}: {e}")
        return result

    def _record(self, ctx: Context, report: StageReport) -> None:
        ctx.stage_reports.append(report)
        if self.on_stage:
            self.on_stage(report)

    @staticmethod
    def _ms(t0: float) -> float:
        return round((time.perf_counter() - t0) * 1000, 1)
