from __future__ import annotations

import threading
import time
from typing import Dict, Optional, Protocol, Set, Tuple

from brewmatch.models import SeenRecord


class SeenStore(Protocol):
    """Persistence for which candidates an identity has been shown."""

    def record_view(
        self,
        identity: str,
        candidate_id: str,
        destination: str,
        name: Optional[str] = None,
        now: Optional[float] = None,
    ) -> SeenRecord: ...

    def mark_saved(self, identity: str, candidate_id: str, saved: bool = True) -> SeenRecord: ...

    def unsaved_seen_ids(self, identity: str, destination: str) -> Set[str]: ...


class InMemorySeenStore:
    """Simple in-memory seen store keyed by (identity, candidate id).

    The destination is recorded on the first view and used for lookups; the
    search parameters that produced the view are not part of the key.
    """

    def __init__(self) -> None:
        self._records: Dict[Tuple[str, str], SeenRecord] = {}
        # background tasks may write from worker threads
        self._lock = threading.Lock()

    def record_view(
        self,
        identity: str,
        candidate_id: str,
        destination: str,
        name: Optional[str] = None,
        now: Optional[float] = None,
    ) -> SeenRecord:
        ts = time.time() if now is None else now
        key = (identity, candidate_id)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                record = SeenRecord(
                    identity=identity,
                    candidate_id=candidate_id,
                    destination=destination,
                    name=name,
                    first_seen=ts,
                    last_seen=ts,
                    view_count=1,
                )
                self._records[key] = record
                return record
            record.view_count += 1
            record.last_seen = max(record.last_seen, ts)
            record.first_seen = min(record.first_seen, ts)
            if name and not record.name:
                record.name = name
            if not record.destination:
                record.destination = destination
            return record

    def mark_saved(self, identity: str, candidate_id: str, saved: bool = True) -> SeenRecord:
        key = (identity, candidate_id)
        with self._lock:
            record = self._records.get(key)
            if record is None:
                now = time.time()
                record = SeenRecord(
                    identity=identity,
                    candidate_id=candidate_id,
                    destination="",
                    first_seen=now,
                    last_seen=now,
                )
                self._records[key] = record
            record.is_saved = saved
            return record

    def unsaved_seen_ids(self, identity: str, destination: str) -> Set[str]:
        with self._lock:
            return {
                r.candidate_id
                for r in self._records.values()
                if r.identity == identity and r.destination == destination and not r.is_saved
            }

    def get(self, identity: str, candidate_id: str) -> Optional[SeenRecord]:
        return self._records.get((identity, candidate_id))

    def __len__(self) -> int:
        return len(self._records)
