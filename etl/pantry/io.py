from __future__ import annotations
import csv, json
from pathlib import Path
from typing import Any, Iterable, List, Sequence

def ensure_dir(path: Path) -> None:
    """Ensure directory exists, creating parents if needed."""
    path.mkdir(parents=True, exist_ok=True)

def read_json(p: Path) -> Any:
    return json.loads(Path(p).read_text(encoding="utf-8"))

def write_json(p: Path, obj: Any) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(obj, ensure_ascii=False, indent=2, default=str), encoding="utf-8")

def write_csv(p: Path, header: Sequence[str], rows: Iterable[Sequence[Any]]) -> None:
    """Write rows with minimal quoting; embedded quotes are doubled."""
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("w", encoding="utf-8", newline="") as f:
        w = csv.writer(f, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
        w.writerow(list(header))
        for r in rows:
            w.writerow(list(r))

def read_delimited(p: Path, delimiter: str = ",") -> List[List[str]]:
    """Read a delimited file into raw rows. Quoted fields may hold the delimiter."""
    with p.open("r", encoding="utf-8-sig", newline="") as f:
        return [row for row in csv.reader(f, delimiter=delimiter, skipinitialspace=True)]
