"""
Partitioned key-value store with per-row compare-and-swap.

The engine only relies on three primitives:

    get(partition, key)                       -> (doc, token) | None
    put(partition, key, doc, expected, ts)    -> new token, or StoreConflict
    scan(partition, prefix, since)            -> (key, doc, token) ordered by key

`expected` is None (unconditional), ABSENT (insert only) or the token read
earlier (optimistic update). `ts` is the row timestamp used by `since`
range filters (epoch seconds, defaults to the wall clock).
"""
import copy
import threading
import time
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from ..core.errors import StoreConflict, StoreUnavailable
from ..utils.files import load_json, save_json
from ..utils.log import log_line

class _Absent:
    def __repr__(self) -> str:
        return "ABSENT"

ABSENT = _Absent()

Expected = Union[None, _Absent, str]
Row = Tuple[Dict[str, Any], str, float]


class PartitionedStore:
    """Interface. Implementations must make put() atomic per row."""

    def get(self, partition: str, key: str) -> Optional[Tuple[Dict[str, Any], str]]:
        raise NotImplementedError

    def put(self, partition: str, key: str, doc: Dict[str, Any],
            expected: Expected = None, ts: Optional[float] = None) -> str:
        raise NotImplementedError

    def scan(self, partition: str, prefix: str = "",
             since: Optional[float] = None) -> Iterator[Tuple[str, Dict[str, Any], str]]:
        raise NotImplementedError

    def partitions(self) -> List[str]:
        raise NotImplementedError


class InMemoryStore(PartitionedStore):
    """Thread-safe in-process store. Docs are copied on the way in and out."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: Dict[str, Dict[str, Row]] = {}
        self._next_token = 1

    def _issue_token(self) -> str:
        tok = str(self._next_token)
        self._next_token += 1
        return tok

    def get(self, partition, key):
        with self._lock:
            row = self._rows.get(partition, {}).get(key)
            if row is None:
                return None
            doc, token, _ = row
            return copy.deepcopy(doc), token

    def put(self, partition, key, doc, expected=None, ts=None):
        with self._lock:
            part = self._rows.setdefault(partition, {})
            current = part.get(key)
            if expected is ABSENT:
                if current is not None:
                    raise StoreConflict(partition, key)
            elif expected is not None:
                if current is None or current[1] != expected:
                    raise StoreConflict(partition, key)
            token = self._issue_token()
            part[key] = (copy.deepcopy(doc), token, float(time.time() if ts is None else ts))
            self._after_write()
            return token

    def scan(self, partition, prefix="", since=None):
        with self._lock:
            rows = [
                (k, copy.deepcopy(doc), token)
                for k, (doc, token, row_ts) in self._rows.get(partition, {}).items()
                if k.startswith(prefix) and (since is None or row_ts >= since)
            ]
        rows.sort(key=lambda r: r[0])
        return iter(rows)

    def partitions(self):
        with self._lock:
            return sorted(self._rows.keys())

    def _after_write(self) -> None:
        """Hook for persistent subclasses; called with the lock held."""


class JsonFileStore(InMemoryStore):
    """
    InMemoryStore persisted to a single JSON file after every write.
    Safe across threads of one process, not across processes.
    """

    def __init__(self, path: Union[str, Path]):
        super().__init__()
        self.path = Path(path)
        data = load_json(self.path, {})
        if not isinstance(data, dict):
            data = {}
        self._next_token = int(data.get("next_token") or 1)
        for partition, rows in (data.get("partitions") or {}).items():
            part = self._rows.setdefault(partition, {})
            for key, row in (rows or {}).items():
                part[key] = (row.get("doc") or {}, str(row.get("token")), float(row.get("ts") or 0.0))

    def _snapshot(self) -> Dict[str, Any]:
        return {
            "version": 1,
            "next_token": self._next_token,
            "partitions": {
                p: {k: {"doc": doc, "token": token, "ts": ts} for k, (doc, token, ts) in rows.items()}
                for p, rows in self._rows.items()
            },
        }

    def _after_write(self) -> None:
        try:
            save_json(self.path, self._snapshot())
        except OSError as e:
            log_line(f"STORE | save failed path={self.path} err={e!r}", "ERROR")
            raise StoreUnavailable(f"cannot persist {self.path}: {e!r}") from e
