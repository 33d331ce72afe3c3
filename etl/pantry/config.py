from __future__ import annotations
import os, json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from .contracts.schemas import CONFIG_SCHEMA, validate
from .errors import ConfigError

DEFAULT_PORTION_BANDS: Dict[str, Tuple[float, float]] = {"roti": (35, 60), "idli": (80, 180)}
MERGE_POLICIES = ("first_seen", "source_priority", "confidence")

def find_project_root(start: Optional[Path] = None) -> Path:
    """Walk up from `start` looking for pyproject.toml; falls back to cwd."""
    cur = (start or Path.cwd()).resolve()
    while True:
        if (cur / "pyproject.toml").exists():
            return cur
        if cur.parent == cur:
            return (start or Path.cwd()).resolve()
        cur = cur.parent

def load_env(project_root: Optional[Path] = None) -> None:
    """Load .env from the project root if present; real env vars win."""
    root = project_root or find_project_root()
    dotenv_path = root / ".env"
    if dotenv_path.exists():
        load_dotenv(dotenv_path, override=False)

def _split_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [p.strip() for p in raw.split(",") if p.strip()]

def _env_float(key: str, default: float) -> float:
    raw = os.environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got {raw!r}")

def _parse_bands(raw: Any, where: str) -> Dict[str, Tuple[float, float]]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigError(f"{where}: invalid JSON: {e}")
    if not isinstance(raw, dict):
        raise ConfigError(f"{where}: expected an object of keyword -> [min, max]")
    out: Dict[str, Tuple[float, float]] = {}
    for k, v in raw.items():
        if not isinstance(v, (list, tuple)) or len(v) != 2:
            raise ConfigError(f"{where}: band for {k!r} must be [min, max]")
        lo, hi = float(v[0]), float(v[1])
        if lo > hi:
            raise ConfigError(f"{where}: band for {k!r} has min > max")
        out[str(k).lower()] = (lo, hi)
    return out

@dataclass
class SeedConfig:
    db_path: Path
    reports_dir: Path
    ifct_csv: Path
    usda_api_key: Optional[str] = None
    usda_queries: List[str] = field(default_factory=list)
    usda_fdc_ids: List[int] = field(default_factory=list)
    usda_page_size: int = 5
    off_disable: bool = False
    off_barcodes: List[str] = field(default_factory=list)
    atwater_tolerance: float = 30.0
    portion_bands: Dict[str, Tuple[float, float]] = field(default_factory=lambda: dict(DEFAULT_PORTION_BANDS))
    merge_policy: str = "first_seen"
    provider_delay_s: float = 0.2
    http_timeout_s: float = 10.0
    search_deadline_s: float = 8.0
    promote: str = "always"

    @staticmethod
    def from_env(project_root: Optional[Path] = None) -> "SeedConfig":
        root = project_root or find_project_root()
        load_env(root)
        env = os.environ
        build = root / "etl" / "build"
        try:
            fdc_ids = [int(x) for x in _split_list(env.get("USDA_FDC_IDS"))]
        except ValueError:
            raise ConfigError("USDA_FDC_IDS must be a comma-separated list of integers")
        cfg = SeedConfig(
            db_path=Path(env.get("PANTRY_DB_PATH", str(build / "database" / "pantry.sqlite"))),
            reports_dir=Path(env.get("PANTRY_REPORTS_DIR", str(build / "reports"))),
            ifct_csv=Path(env.get("PANTRY_IFCT_CSV", str(root / "etl" / "data" / "ifct_seed.csv"))),
            usda_api_key=env.get("USDA_API_KEY") or None,
            usda_queries=_split_list(env.get("USDA_QUERIES")),
            usda_fdc_ids=fdc_ids,
            off_disable=env.get("OFF_DISABLE", "").lower() == "true",
            off_barcodes=_split_list(env.get("OFF_BARCODES")),
            atwater_tolerance=_env_float("SEED_QA_ATWATER_TOLERANCE", 30.0),
            portion_bands=_parse_bands(env["SEED_QA_PORTION_BANDS"], "SEED_QA_PORTION_BANDS")
                if env.get("SEED_QA_PORTION_BANDS") else dict(DEFAULT_PORTION_BANDS),
            merge_policy=env.get("PANTRY_MERGE_POLICY", "first_seen"),
            provider_delay_s=_env_float("PANTRY_PROVIDER_DELAY_S", 0.2),
            http_timeout_s=_env_float("PANTRY_HTTP_TIMEOUT_S", 10.0),
            search_deadline_s=_env_float("PANTRY_SEARCH_DEADLINE_S", 8.0),
            promote=env.get("PANTRY_PROMOTE", "always"),
        )
        cfg.check()
        return cfg

    def with_file(self, path: Path) -> "SeedConfig":
        """Overlay a YAML config file onto this config."""
        try:
            data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot read config {path}: {e}")
        errors = validate(data, CONFIG_SCHEMA, str(path))
        if errors:
            raise ConfigError("; ".join(errors))
        return self.with_overrides(**data)

    def with_overrides(self, **kwargs: Any) -> "SeedConfig":
        known = {f.name for f in fields(self)}
        unknown = set(kwargs) - known
        if unknown:
            raise ConfigError(f"unknown config keys: {', '.join(sorted(unknown))}")
        for key in ("db_path", "reports_dir", "ifct_csv"):
            if key in kwargs and kwargs[key] is not None:
                kwargs[key] = Path(kwargs[key])
        if "portion_bands" in kwargs:
            kwargs["portion_bands"] = _parse_bands(kwargs["portion_bands"], "portion_bands")
        cfg = replace(self, **kwargs)
        cfg.check()
        return cfg

    def check(self) -> None:
        if self.merge_policy not in MERGE_POLICIES:
            raise ConfigError(f"merge_policy must be one of {MERGE_POLICIES}, got {self.merge_policy!r}")
        if self.promote not in ("always", "no_errors"):
            raise ConfigError(f"promote must be 'always' or 'no_errors', got {self.promote!r}")
        if self.atwater_tolerance <= 0:
            raise ConfigError("atwater_tolerance must be positive")

    def ensure_dirs(self) -> None:
        for p in [self.reports_dir, self.db_path.parent]:
            p.mkdir(parents=True, exist_ok=True)
