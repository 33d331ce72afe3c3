from __future__ import annotations
import json, sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence, Union

from .errors import DatabaseError
from .model import CatalogRecord
from .shared.normalize import fold_name

class CatalogStore(ABC):
    """Food catalog collaborator used by the pipeline and the search engine."""

    @abstractmethod
    def upsert(self, record: CatalogRecord) -> None: ...

    @abstractmethod
    def find_by_key(self, name_key: str, source: Optional[str] = None) -> Optional[CatalogRecord]: ...

    @abstractmethod
    def list_by_key(self, name_key: str) -> List[CatalogRecord]: ...

    @abstractmethod
    def find_by_pattern(self, substring: str, limit: int = 50) -> List[CatalogRecord]: ...

    @abstractmethod
    def delete_all(self, sources: Optional[Sequence[str]] = None) -> int: ...

    @abstractmethod
    def bulk_insert(self, records: Iterable[CatalogRecord]) -> int: ...

    @abstractmethod
    def replace_sources(self, records: Sequence[CatalogRecord], sources: Sequence[str]) -> int: ...

    @abstractmethod
    def count(self, source: Optional[str] = None) -> int: ...


_COLUMNS = "name_key, source, name, external_id, aliases_text, record_json, updated_at"

DDL = """
PRAGMA journal_mode=WAL;

CREATE TABLE IF NOT EXISTS catalog (
  name_key TEXT NOT NULL,
  source TEXT NOT NULL,
  name TEXT NOT NULL,
  external_id TEXT,
  aliases_text TEXT NOT NULL DEFAULT '',   -- folded aliases, ' | ' joined, for LIKE
  record_json TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  PRIMARY KEY (name_key, source)
);
CREATE INDEX IF NOT EXISTS idx_catalog_source ON catalog(source);

-- written first during replace_sources, then swapped in one transaction
CREATE TABLE IF NOT EXISTS catalog_staging (
  name_key TEXT NOT NULL,
  source TEXT NOT NULL,
  name TEXT NOT NULL,
  external_id TEXT,
  aliases_text TEXT NOT NULL DEFAULT '',
  record_json TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  PRIMARY KEY (name_key, source)
);

CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, val TEXT NOT NULL);
"""

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

def _row_values(rec: CatalogRecord):
    aliases = " | ".join(fold_name(a) for a in rec.aliases)
    return (rec.name_key, rec.source, rec.name, rec.external_id, aliases,
            json.dumps(rec.to_dict(), ensure_ascii=False, default=str), _now())

def _like(substring: str) -> str:
    s = substring.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{s}%"

class SqliteCatalogStore(CatalogStore):
    """SQLite-backed catalog. One short-lived connection per call."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self._connect() as con:
                con.executescript(DDL)
        except (OSError, sqlite3.Error) as e:
            raise DatabaseError(f"cannot open catalog {self.path}: {e}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        con = sqlite3.connect(str(self.path), isolation_level=None, timeout=30)
        try:
            yield con
        finally:
            con.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        with self._connect() as con:
            try:
                con.execute("BEGIN IMMEDIATE")
                yield con
                con.execute("COMMIT")
            except sqlite3.Error as e:
                if con.in_transaction:
                    con.execute("ROLLBACK")
                raise DatabaseError(f"catalog write failed: {e}") from e
            except Exception:
                if con.in_transaction:
                    con.execute("ROLLBACK")
                raise

    def _query(self, sql: str, params: tuple = ()) -> List[CatalogRecord]:
        try:
            with self._connect() as con:
                rows = con.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}") from e
        return [CatalogRecord.from_dict(json.loads(r[0])) for r in rows]

    # --- reads ---------------------------------------------------------------

    def find_by_key(self, name_key: str, source: Optional[str] = None) -> Optional[CatalogRecord]:
        if source is None:
            rows = self._query("SELECT record_json FROM catalog WHERE name_key=? ORDER BY source LIMIT 1", (name_key,))
        else:
            rows = self._query("SELECT record_json FROM catalog WHERE name_key=? AND source=?", (name_key, source))
        return rows[0] if rows else None

    def list_by_key(self, name_key: str) -> List[CatalogRecord]:
        return self._query("SELECT record_json FROM catalog WHERE name_key=? ORDER BY source", (name_key,))

    def find_by_pattern(self, substring: str, limit: int = 50) -> List[CatalogRecord]:
        key = fold_name(substring)
        if not key:
            return []
        pat = _like(key)
        return self._query(
            "SELECT record_json FROM catalog "
            "WHERE name_key LIKE ? ESCAPE '\\' OR aliases_text LIKE ? ESCAPE '\\' "
            "ORDER BY length(name_key), name_key LIMIT ?",
            (pat, pat, int(limit)),
        )

    def iter_records(self, source: Optional[str] = None) -> List[CatalogRecord]:
        if source is None:
            return self._query("SELECT record_json FROM catalog ORDER BY name_key, source")
        return self._query("SELECT record_json FROM catalog WHERE source=? ORDER BY name_key", (source,))

    def count(self, source: Optional[str] = None) -> int:
        try:
            with self._connect() as con:
                if source is None:
                    return con.execute("SELECT COUNT(*) FROM catalog").fetchone()[0]
                return con.execute("SELECT COUNT(*) FROM catalog WHERE source=?", (source,)).fetchone()[0]
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}") from e

    def get_meta(self, key: str) -> Optional[str]:
        try:
            with self._connect() as con:
                row = con.execute("SELECT val FROM meta WHERE key=?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise DatabaseError(f"Query failed: {e}") from e
        return row[0] if row else None

    # --- writes --------------------------------------------------------------

    def upsert(self, record: CatalogRecord) -> None:
        with self._transaction() as con:
            con.execute(
                f"INSERT INTO catalog ({_COLUMNS}) VALUES (?,?,?,?,?,?,?) "
                "ON CONFLICT(name_key, source) DO UPDATE SET "
                "name=excluded.name, external_id=excluded.external_id, aliases_text=excluded.aliases_text, "
                "record_json=excluded.record_json, updated_at=excluded.updated_at",
                _row_values(record),
            )

    def bulk_insert(self, records: Iterable[CatalogRecord]) -> int:
        rows = [_row_values(r) for r in records]
        with self._transaction() as con:
            con.executemany(f"INSERT INTO catalog ({_COLUMNS}) VALUES (?,?,?,?,?,?,?)", rows)
        return len(rows)

    def delete_all(self, sources: Optional[Sequence[str]] = None) -> int:
        with self._transaction() as con:
            if sources is None:
                cur = con.execute("DELETE FROM catalog")
            else:
                qs = ",".join("?" for _ in sources) or "NULL"
                cur = con.execute(f"DELETE FROM catalog WHERE source IN ({qs})", tuple(sources))
            return cur.rowcount

    def replace_sources(self, records: Sequence[CatalogRecord], sources: Sequence[str]) -> int:
        """
        Two-phase swap: load staging, then in one transaction drop the given
        sources from the live table and copy staging in. Readers never see
        the catalog without those sources.
        """
        rows = [_row_values(r) for r in records]
        with self._transaction() as con:
            con.execute("DELETE FROM catalog_staging")
            con.executemany(f"INSERT OR REPLACE INTO catalog_staging ({_COLUMNS}) VALUES (?,?,?,?,?,?,?)", rows)
        all_sources = sorted(set(sources) | {r.source for r in records})
        with self._transaction() as con:
            qs = ",".join("?" for _ in all_sources) or "NULL"
            con.execute(f"DELETE FROM catalog WHERE source IN ({qs})", tuple(all_sources))
            con.execute(f"INSERT INTO catalog ({_COLUMNS}) SELECT {_COLUMNS} FROM catalog_staging")
            con.execute("DELETE FROM catalog_staging")
            con.execute("INSERT OR REPLACE INTO meta(key,val) VALUES(?,?)", ("last_swap_at", _now()))
        return len(rows)
