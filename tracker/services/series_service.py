"""
Derived consumption series service.

A ConsumptionTracker owns the in-process derived state for one kind of
entry (fuel topups or odometer readings): one immutable SeriesSnapshot per
vehicle holding the manual entries, the generated estimates, the consumption
points and the bucketed aggregates.

Every mutation goes through the tracker, which writes to the repository and
then rebuilds the affected vehicle's snapshot in a fixed order (discard
estimates, regenerate, compute points, aggregate) before swapping it in.
Readers only ever see a complete snapshot.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from calculations import (
    Bucket,
    ConsumptionMode,
    ConsumptionPoint,
    EntryKind,
    Reading,
    TariffCostFunction,
    TariffRate,
    TrendResult,
    bucket_all,
    build_daily_series,
    classify_trend,
    compute_points,
    regenerate_estimates,
    seasonal_breakdown,
    strip_estimates,
    summarize,
)
from calculations.constants import DUPLICATE_QUANTITY_TOLERANCE, LOCAL_ID_PREFIX, MONEY_DECIMALS
from exceptions import DatabaseError, DuplicateEntryError, EntryNotFoundError, EntryValidationError
from services.events import ENTRY_ADDED, ENTRY_DELETED, ENTRY_UPDATED, TARIFFS_CHANGED, EventBus
from services.write_queue import CREATE, DELETE, SET_FIRST, UPDATE, PendingWrite, PendingWriteQueue
from utils.error_codes import ErrorCode, StructuredError
from utils.timezone import local_yesterday
from utils.wide_events import WideEvent, log_entry_event, track_operation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeriesSnapshot:
    """Complete derived state for one vehicle at one moment."""

    subject_id: str
    manual: Tuple[Reading, ...]
    estimates: Tuple[Reading, ...]
    series: Tuple[Reading, ...]
    points: Tuple[ConsumptionPoint, ...]
    buckets: Dict[str, Tuple[Bucket, ...]]
    trend: TrendResult
    built_at: datetime
    through: Optional[date] = None

    @property
    def pending(self) -> Tuple[Reading, ...]:
        return tuple(r for r in self.manual if r.pending)

    def select_points(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        include_estimates: bool = True,
        include_baseline: bool = True,
    ) -> List[ConsumptionPoint]:
        """
        Consumption points within an inclusive date range.

        Args:
            start: First calendar day to keep (None for open-ended)
            end: Last calendar day to keep (None for open-ended)
            include_estimates: Keep points derived from ESTIMATED readings
            include_baseline: Keep the zero baseline point
        """
        return [
            p for p in self.points
            if (start is None or p.date >= start)
            and (end is None or p.date <= end)
            and (include_estimates or p.kind != EntryKind.ESTIMATED)
            and (include_baseline or not p.is_baseline)
        ]

    def summary(self) -> dict:
        return summarize(self.points)

    def seasons(self) -> List[dict]:
        return seasonal_breakdown(self.points)

    def daily_series(self, fill_missing_days: bool = True) -> List[ConsumptionPoint]:
        return build_daily_series(self.manual, fill_missing_days)

    def to_dict(self, include_series: bool = True) -> Dict[str, Any]:
        data = {
            "subject_id": self.subject_id,
            "built_at": self.built_at.isoformat(),
            "manual_count": len(self.manual),
            "estimated_count": len(self.estimates),
            "pending_count": len(self.pending),
            "trend": self.trend.to_dict(),
            "summary": self.summary(),
            "points": [p.to_dict() for p in self.points],
            "buckets": {
                granularity: [b.to_dict() for b in buckets]
                for granularity, buckets in self.buckets.items()
            },
        }
        if include_series:
            data["series"] = [r.to_dict() for r in self.series]
        return data


def _default_clock() -> datetime:
    return datetime.now(timezone.utc)


class ConsumptionTracker:
    """
    Dependency-injected state container for one entry type.

    Args:
        repository_factory: Zero-argument callable returning a repository
            bound to a live session (see services.repository)
        bus: EventBus that receives entry_added / entry_updated / entry_deleted
        mode: ConsumptionMode for this entry type
        estimate: Whether to gap-fill with estimated readings
        clock: Returns "now"; drives the trailing-estimate cut-off
        cost_fn: Cost function passed to compute_points
        topic: Name carried on published events (also the real-time room)
        write_queue: Degraded-write queue; without one, database failures propagate
    """

    def __init__(
        self,
        repository_factory: Callable[[], Any],
        bus: Optional[EventBus] = None,
        mode: ConsumptionMode = ConsumptionMode.ADDITIVE,
        estimate: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        cost_fn=None,
        topic: str = "fuel-topups",
        write_queue: Optional[PendingWriteQueue] = None,
    ):
        self._repository_factory = repository_factory
        self.bus = bus
        self.mode = ConsumptionMode(mode)
        self.estimate = estimate
        self._clock = clock or _default_clock
        self._cost_fn = cost_fn
        self.topic = topic
        self.write_queue = write_queue
        self.tariff_fuel_types: Optional[Tuple[str, ...]] = None

        self._snapshots: Dict[str, SeriesSnapshot] = {}
        self._read_lock = threading.Lock()
        self._write_lock = threading.RLock()

    # ----------------------------------------------------------------- reads

    def snapshot(self, subject_id: str) -> SeriesSnapshot:
        """
        Current snapshot for a vehicle, built on first access.

        A snapshot built for a different local day is rebuilt, so trailing
        estimates roll forward past midnight without waiting for a write.
        """
        with self._read_lock:
            snap = self._snapshots.get(subject_id)
        if snap is None:
            return self.rebuild(subject_id)
        if self._is_stale(snap):
            try:
                return self.rebuild(subject_id)
            except DatabaseError as e:
                logger.warning(f"Serving {subject_id} snapshot from {snap.through}: {e}")
        return snap

    def _is_stale(self, snap: SeriesSnapshot) -> bool:
        if not self.estimate or snap.through is None:
            return False
        return local_yesterday(self._clock()) != snap.through

    def cached_subjects(self) -> List[str]:
        with self._read_lock:
            return sorted(self._snapshots)

    def subjects(self) -> List[str]:
        """Every vehicle with persisted or queued entries."""
        known = set(self.cached_subjects())
        try:
            known.update(self._repository_factory().subject_ids())
        except DatabaseError as e:
            logger.warning(f"Listing vehicles from cache only: {e}")
        if self.write_queue is not None:
            known.update(self.write_queue.subjects())
        return sorted(known)

    def invalidate(self, subject_id: Optional[str] = None) -> None:
        with self._read_lock:
            if subject_id is None:
                self._snapshots.clear()
            else:
                self._snapshots.pop(subject_id, None)

    # -------------------------------------------------------------- pipeline

    def build_snapshot(self, subject_id: str, manual: Iterable[Reading]) -> SeriesSnapshot:
        """
        Run the derivation pipeline over a manual set.

        Order is fixed: discard estimates, regenerate, sort, compute points,
        aggregate. Nothing here touches shared state.
        """
        event = WideEvent("series_rebuild", trace_id=subject_id)
        event.add_context(subject_id=subject_id, topic=self.topic, mode=self.mode.value)

        manual = strip_estimates(manual)
        built_at = self._clock()
        through = local_yesterday(built_at) if self.estimate else None
        with event.timer("estimate"):
            if self.estimate:
                full = regenerate_estimates(manual, now=built_at, through=through)
            else:
                full = list(manual)
        series = sorted(full, key=lambda r: (r.date, r.is_estimated))
        estimates = [r for r in series if r.is_estimated]

        with event.timer("consumption"):
            points = compute_points(series, self.mode, self._cost_fn)

        with event.timer("aggregate"):
            consumption = [p for p in points if not p.is_baseline]
            buckets = {g: tuple(b) for g, b in bucket_all(consumption).items()}
            trend = classify_trend(consumption)

        event.add_business_metric("manual_entries", len(manual))
        event.add_business_metric("estimates_generated", len(estimates))
        event.add_business_metric("points", len(points))
        event.mark_success()
        event.emit()

        return SeriesSnapshot(
            subject_id=subject_id,
            manual=tuple(sorted(manual, key=lambda r: r.date)),
            estimates=tuple(estimates),
            series=tuple(series),
            points=tuple(points),
            buckets=buckets,
            trend=trend,
            built_at=built_at,
            through=through,
        )

    def rebuild(self, subject_id: str, repository=None) -> SeriesSnapshot:
        """Reload a vehicle's manual entries and swap in a fresh snapshot."""
        with self._write_lock:
            repository = repository or self._repository_factory()
            manual = self._manual_readings(subject_id, repository)
            snap = self.build_snapshot(subject_id, manual)
            with self._read_lock:
                self._snapshots[subject_id] = snap
            return snap

    def recalculate_all(self) -> int:
        """Rebuild every cached snapshot. Returns the number rebuilt."""
        subjects = self.cached_subjects()
        repository = self._repository_factory()
        for subject_id in subjects:
            self.rebuild(subject_id, repository)
        return len(subjects)

    # ---------------------------------------------------------------- tariffs

    def set_tariffs(self, tariffs: Iterable[TariffRate]) -> None:
        """Price matching readings from tariffs instead of their own cost."""
        self._cost_fn = TariffCostFunction(tariffs, fuel_types=self.tariff_fuel_types)

    def subscribe_to_tariffs(self, bus: Optional[EventBus] = None,
                             fuel_types: Optional[Iterable[str]] = None) -> None:
        """Recalculate whenever the tariff service publishes a change."""
        self.tariff_fuel_types = tuple(fuel_types) if fuel_types is not None else None
        (bus or self.bus).subscribe(TARIFFS_CHANGED, self._on_tariffs_changed)

    def _on_tariffs_changed(self, payload: Dict[str, Any]) -> None:
        self.set_tariffs(payload.get("tariffs", []))
        rebuilt = self.recalculate_all()
        logger.info(f"Tariffs changed, recalculated {rebuilt} {self.topic} series")

    # -------------------------------------------------------------- mutations

    def add_entry(self, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """
        Validate and persist a new manual entry, then rebuild its vehicle.

        Returns:
            (payload, persisted). ``persisted`` is False when the write was
            queued because the database was unreachable.

        Raises:
            EntryValidationError: ESTIMATED entries cannot be submitted
            DuplicateEntryError: Same vehicle, same day, same quantity
        """
        repository = self._repository_factory()
        candidate = repository.reading_from_fields(fields)
        self._reject_estimated(candidate.kind)

        with self._write_lock:
            manual = self._manual_readings(candidate.subject_id, repository)
            self._check_duplicate(candidate, manual)

            def persist():
                entry = repository.create(fields)
                if candidate.is_first_entry:
                    entry = repository.set_first_entry(entry.id)
                return entry

            entry, write = self._persist_or_queue(CREATE, candidate.subject_id, persist, fields)
            self.rebuild(candidate.subject_id, repository)

        if write is not None:
            return self._pending_payload(candidate.copy(id=write.local_id), write), False

        payload = entry.to_dict()
        self._publish(ENTRY_ADDED, candidate.subject_id, payload)
        log_entry_event(entry.id, candidate.subject_id, "added", True, topic=self.topic)
        return payload, True

    def update_entry(self, entry_id: str, fields: Dict[str, Any]) -> Tuple[Dict[str, Any], bool]:
        """Apply changes to an entry (persisted or still queued) and rebuild."""
        repository = self._repository_factory()
        changes = repository.reading_changes(fields)
        if "kind" in changes:
            self._reject_estimated(changes["kind"])

        with self._write_lock:
            current = self._find_reading(entry_id, repository)
            candidate = self._apply_changes(current, changes)
            manual = self._manual_readings(candidate.subject_id, repository)
            self._check_duplicate(candidate, manual, exclude_id=entry_id)

            def persist():
                entry = repository.update(entry_id, fields)
                if fields.get(repository.first_flag) is True:
                    entry = repository.set_first_entry(entry_id)
                return entry

            entry, write = self._persist_or_queue(UPDATE, current.subject_id, persist, fields, entry_id)
            for subject_id in {current.subject_id, candidate.subject_id}:
                self.rebuild(subject_id, repository)

        if write is not None:
            return self._pending_payload(candidate, write), False

        payload = entry.to_dict()
        self._publish(ENTRY_UPDATED, candidate.subject_id, payload)
        log_entry_event(entry_id, candidate.subject_id, "updated", True, topic=self.topic)
        return payload, True

    def delete_entry(self, entry_id: str) -> Tuple[Dict[str, Any], bool]:
        """Delete an entry and rebuild its vehicle."""
        repository = self._repository_factory()

        with self._write_lock:
            current = self._find_reading(entry_id, repository)
            payload, write = self._persist_or_queue(
                DELETE, current.subject_id, lambda: repository.delete(entry_id), entry_id=entry_id
            )
            self.rebuild(current.subject_id, repository)

        if write is not None:
            return {"id": entry_id, "pending": True, "queued": write.to_dict()}, False

        self._publish(ENTRY_DELETED, current.subject_id, payload)
        log_entry_event(entry_id, current.subject_id, "deleted", True, topic=self.topic)
        return payload, True

    def toggle_first_entry(self, entry_id: str) -> Tuple[Dict[str, Any], bool]:
        """
        Flip an entry's baseline flag.

        Setting the flag clears it on the vehicle's other entries, so at most
        one baseline exists per vehicle.
        """
        repository = self._repository_factory()

        with self._write_lock:
            current = self._find_reading(entry_id, repository)
            value = not current.is_first_entry
            entry, write = self._persist_or_queue(
                SET_FIRST, current.subject_id,
                lambda: repository.set_first_entry(entry_id, value),
                {"value": value}, entry_id,
            )
            self.rebuild(current.subject_id, repository)

        if write is not None:
            return self._pending_payload(current.copy(is_first_entry=value), write), False

        payload = entry.to_dict()
        self._publish(ENTRY_UPDATED, current.subject_id, payload)
        log_entry_event(
            entry_id, current.subject_id, "first_toggled", True,
            topic=self.topic, is_first_entry=value,
        )
        return payload, True

    # ---------------------------------------------------------- reconciliation

    def reconcile(self) -> Dict[str, int]:
        """
        Replay queued writes against the repository.

        Returns:
            Counts of applied, dropped and still-queued writes
        """
        if self.write_queue is None or len(self.write_queue) == 0:
            return {"applied": 0, "dropped": 0, "remaining": 0}

        repository = self._repository_factory()
        with track_operation("reconcile", topic=self.topic, queued=len(self.write_queue)) as event:
            with self._write_lock:
                subjects = set(self.write_queue.subjects())
                applied, dropped = self.write_queue.replay(
                    lambda write: self._apply_write(repository, write)
                )
                remaining = len(self.write_queue)
                for subject_id in subjects:
                    self.rebuild(subject_id, repository)

            event.add_business_metric("writes_reconciled", len(applied))
            event.add_business_metric("writes_dropped", len(dropped))
            event.add_business_metric("writes_remaining", remaining)

        for write, result in applied:
            self._publish_replayed(write, result)

        return {"applied": len(applied), "dropped": len(dropped), "remaining": remaining}

    def _apply_write(self, repository, write: PendingWrite):
        if write.operation == CREATE:
            entry = repository.create(write.fields)
            if write.fields.get(repository.first_flag) is True:
                entry = repository.set_first_entry(entry.id)
            return entry
        if write.operation == UPDATE:
            entry = repository.update(write.entry_id, write.fields)
            if write.fields.get(repository.first_flag) is True:
                entry = repository.set_first_entry(write.entry_id)
            return entry
        if write.operation == DELETE:
            return repository.delete(write.entry_id)
        if write.operation == SET_FIRST:
            return repository.set_first_entry(write.entry_id, write.fields.get("value", True))
        raise ValueError(f"Unknown queued operation: {write.operation}")

    def _publish_replayed(self, write: PendingWrite, result) -> None:
        if write.operation == DELETE:
            self._publish(ENTRY_DELETED, write.subject_id, result)
        elif write.operation == CREATE:
            self._publish(ENTRY_ADDED, write.subject_id, result.to_dict())
        else:
            self._publish(ENTRY_UPDATED, write.subject_id, result.to_dict())

    # ---------------------------------------------------------------- helpers

    @staticmethod
    def _is_local(entry_id: Optional[str]) -> bool:
        return bool(entry_id) and str(entry_id).startswith(f"{LOCAL_ID_PREFIX}-")

    @staticmethod
    def _reject_estimated(kind) -> None:
        if kind is not None and EntryKind(kind) == EntryKind.ESTIMATED:
            raise EntryValidationError(
                "Estimated entries are generated, not submitted",
                errors=[StructuredError(ErrorCode.E006_INVALID_ENTRY_KIND, "kind ESTIMATED").to_dict()],
            )

    @staticmethod
    def _apply_changes(reading: Reading, changes: Dict[str, Any]) -> Reading:
        updated = reading.copy(**changes)
        if ("quantity" in changes or "unit_cost" in changes) and changes.get("total_cost") is None:
            updated.total_cost = round(updated.quantity * (updated.unit_cost or 0.0), MONEY_DECIMALS)
        return updated

    def _check_duplicate(self, candidate: Reading, manual: Iterable[Reading],
                         exclude_id: Optional[str] = None) -> None:
        for reading in manual:
            if exclude_id is not None and reading.id == exclude_id:
                continue
            if (
                reading.subject_id == candidate.subject_id
                and reading.date == candidate.date
                and abs(reading.quantity - candidate.quantity) < DUPLICATE_QUANTITY_TOLERANCE
            ):
                raise DuplicateEntryError(
                    "An entry with the same date and quantity already exists",
                    subject_id=candidate.subject_id,
                    entry_date=candidate.date.isoformat(),
                    existing_id=reading.id,
                )

    def _persist_or_queue(self, operation: str, subject_id: str, persist: Callable[[], Any],
                          fields: Optional[Dict[str, Any]] = None,
                          entry_id: Optional[str] = None) -> Tuple[Any, Optional[PendingWrite]]:
        if not self._is_local(entry_id):
            try:
                return persist(), None
            except DatabaseError as e:
                if self.write_queue is None or not e.retryable:
                    raise
        elif self.write_queue is None:
            raise EntryNotFoundError("Entry not found", entry_id=entry_id)

        write = self.write_queue.enqueue(operation, subject_id, fields, entry_id)
        return None, write

    def _pending_payload(self, reading: Reading, write: PendingWrite) -> Dict[str, Any]:
        payload = reading.to_dict()
        payload["pending"] = True
        payload["queued"] = write.to_dict()
        return payload

    def _cached_manual(self, subject_id: str) -> List[Reading]:
        with self._read_lock:
            cached = self._snapshots.get(subject_id)
        return [r for r in cached.manual if not r.pending] if cached else []

    def _manual_readings(self, subject_id: str, repository) -> List[Reading]:
        """Persisted manual readings for a vehicle with queued writes overlaid."""
        try:
            readings = repository.list_readings(subject_id)
        except DatabaseError as e:
            if self.write_queue is None:
                raise
            logger.warning(f"Using cached entries for {subject_id}: {e}")
            readings = self._cached_manual(subject_id)
        return self._overlay_pending(subject_id, readings, repository)

    def _overlay_pending(self, subject_id: str, readings: List[Reading], repository) -> List[Reading]:
        if self.write_queue is None:
            return readings

        by_id: Dict[str, Reading] = OrderedDict((r.id, r) for r in readings)
        for write in self.write_queue.pending(subject_id):
            target = self.write_queue.resolve_id(write.target_id)
            if write.operation == CREATE:
                reading = repository.reading_from_fields(write.fields, entry_id=write.local_id)
                if reading.is_first_entry:
                    self._clear_first(by_id)
                by_id[write.local_id] = reading.copy(pending=True)
            elif write.operation == UPDATE and target in by_id:
                changes = repository.reading_changes(write.fields)
                by_id[target] = self._apply_changes(by_id[target], changes).copy(pending=True)
            elif write.operation == DELETE:
                by_id.pop(target, None)
            elif write.operation == SET_FIRST and target in by_id:
                value = write.fields.get("value", True)
                if value:
                    self._clear_first(by_id)
                by_id[target] = by_id[target].copy(is_first_entry=value, pending=True)
        return list(by_id.values())

    @staticmethod
    def _clear_first(by_id: Dict[str, Reading]) -> None:
        for key, reading in list(by_id.items()):
            if reading.is_first_entry:
                by_id[key] = reading.copy(is_first_entry=False)

    def _find_reading(self, entry_id: str, repository) -> Reading:
        if not self._is_local(entry_id):
            try:
                return repository.get(entry_id).to_reading()
            except DatabaseError as e:
                if self.write_queue is None:
                    raise
                logger.warning(f"Looking up {entry_id} in cache: {e}")

        with self._read_lock:
            snapshots = list(self._snapshots.values())
        for snap in snapshots:
            for reading in snap.manual:
                if reading.id == entry_id:
                    return reading
        raise EntryNotFoundError("Entry not found", entry_id=entry_id)

    def _publish(self, event: str, subject_id: str, entry: Dict[str, Any]) -> None:
        if self.bus is None:
            return
        self.bus.publish(event, {"topic": self.topic, "subject_id": subject_id, "entry": entry})
