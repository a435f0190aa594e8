"""
Degraded-write queue.

When the database rejects a write for connectivity reasons the tracker
queues it here under a ``local-`` id and keeps serving the entry as
pending. ``replay`` later applies the queue in order, maps local ids to the
persisted ones, and stops at the first write that still cannot reach the
database.

The queue lives in process memory only. Writes still queued when the
process exits are lost; the app logs how many at shutdown.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from calculations.constants import LOCAL_ID_PREFIX
from calculations.readings import synthetic_id
from exceptions import DatabaseError, FuelTrackerError
from utils.timezone import utc_now

logger = logging.getLogger(__name__)

CREATE = "create"
UPDATE = "update"
DELETE = "delete"
SET_FIRST = "set_first"


@dataclass
class PendingWrite:
    operation: str
    subject_id: str
    fields: Dict[str, Any] = field(default_factory=dict)
    entry_id: Optional[str] = None
    local_id: str = field(default_factory=lambda: synthetic_id(LOCAL_ID_PREFIX))
    queued_at: datetime = field(default_factory=utc_now)

    @property
    def target_id(self) -> Optional[str]:
        """Id of the entry this write affects (the local id for creates)."""
        return self.local_id if self.operation == CREATE else self.entry_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operation": self.operation,
            "subject_id": self.subject_id,
            "entry_id": self.target_id,
            "queued_at": self.queued_at.isoformat(),
        }


class PendingWriteQueue:
    """Ordered, thread-safe queue of writes awaiting the database."""

    def __init__(self):
        self._items: List[PendingWrite] = []
        self._id_map: Dict[str, str] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def enqueue(self, operation: str, subject_id: str, fields: Optional[Dict[str, Any]] = None,
                entry_id: Optional[str] = None) -> PendingWrite:
        write = PendingWrite(operation, subject_id, dict(fields or {}), entry_id)
        with self._lock:
            self._items.append(write)
        logger.warning(f"Queued {operation} for {subject_id} ({write.target_id}); database unavailable")
        return write

    def pending(self, subject_id: Optional[str] = None) -> List[PendingWrite]:
        with self._lock:
            return [w for w in self._items if subject_id is None or w.subject_id == subject_id]

    def subjects(self) -> List[str]:
        with self._lock:
            return sorted({w.subject_id for w in self._items})

    def clear(self) -> None:
        with self._lock:
            self._items.clear()
            self._id_map.clear()

    def resolve_id(self, entry_id: Optional[str]) -> Optional[str]:
        with self._lock:
            return self._id_map.get(entry_id, entry_id)

    def replay(self, apply: Callable[[PendingWrite], Any]) -> Tuple[List[Tuple[PendingWrite, Any]], List[PendingWrite]]:
        """
        Apply queued writes in order.

        Args:
            apply: Called with each write (entry ids already resolved); returns
                the persisted entry (or payload) on success

        Returns:
            (applied, dropped): writes that reached the database with their
            results, and writes discarded because they can never apply
            (e.g. the target entry no longer exists)
        """
        applied, dropped = [], []
        while True:
            with self._lock:
                if not self._items:
                    break
                write = self._items[0]
                write.entry_id = self._id_map.get(write.entry_id, write.entry_id)

            try:
                result = apply(write)
            except DatabaseError as e:
                if e.retryable:
                    logger.info(f"Reconciliation paused, database still unavailable: {e}")
                    break
                logger.warning(f"Dropping queued {write.operation} for {write.target_id}: {e}")
                dropped.append(write)
            except FuelTrackerError as e:
                logger.warning(f"Dropping queued {write.operation} for {write.target_id}: {e}")
                dropped.append(write)
            else:
                applied.append((write, result))
                if write.operation == CREATE and result is not None:
                    with self._lock:
                        self._id_map[write.local_id] = result.id

            with self._lock:
                self._items.pop(0)

        return applied, dropped
