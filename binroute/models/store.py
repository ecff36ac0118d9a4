from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable
from datetime import UTC, datetime

from binroute.config import BinDefinition
from binroute.models.schemas import BinRecord, BinSnapshot, Reading, ReadingUpdate


class BinNotFoundError(KeyError):
    pass


class BinStore:
    """In-memory latest state and bounded reading history per bin.

    Histories are kept newest-first and trimmed to `history_limit`, so the
    predictor always sees the most recent window only.
    """

    def __init__(self, bins: Iterable[BinDefinition], *, history_limit: int = 10) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be >= 1")
        self.history_limit = history_limit
        self._lock = threading.Lock()
        self._records: dict[str, BinRecord] = {}
        self._history: dict[str, deque[Reading]] = {}

        for item in bins:
            self._records[item.id] = BinRecord(
                bin_id=item.id,
                area_id=item.area_id,
                area_name=item.area_name,
                latitude=item.latitude,
                longitude=item.longitude,
                current_fill_percent=item.initial_fill_percent,
            )
            self._history[item.id] = deque(maxlen=history_limit)

    def __contains__(self, bin_id: object) -> bool:
        return bin_id in self._records

    def _require(self, bin_id: str) -> BinRecord:
        record = self._records.get(bin_id)
        if record is None:
            raise BinNotFoundError(bin_id)
        return record

    def list_bins(self, area_id: str | None = None) -> list[BinRecord]:
        with self._lock:
            records = [
                record.model_copy()
                for record in self._records.values()
                if area_id is None or record.area_id == area_id
            ]
        records.sort(key=lambda record: record.current_fill_percent, reverse=True)
        return records

    def get_bin(self, bin_id: str) -> BinRecord:
        with self._lock:
            return self._require(bin_id).model_copy()

    def record_reading(self, update: ReadingUpdate, *, recorded_at: datetime | None = None) -> BinRecord:
        timestamp = recorded_at or datetime.now(tz=UTC)
        with self._lock:
            record = self._require(update.bin_id)
            record.current_fill_percent = update.fill_percent
            record.status = update.status
            record.lid_status = update.lid_status
            record.lid_angle = update.lid_angle
            record.last_updated = timestamp

            history = self._history[update.bin_id]
            history.appendleft(
                Reading(fill_percent=update.fill_percent, recorded_at=timestamp, status=update.status)
            )
            return record.model_copy()

    def get_history(self, bin_id: str, limit: int | None = None) -> list[Reading]:
        with self._lock:
            self._require(bin_id)
            readings = list(self._history[bin_id])
        if limit is not None:
            readings = readings[:limit]
        return readings

    def snapshots(self, area_id: str | None = None) -> list[BinSnapshot]:
        now = datetime.now(tz=UTC)
        snapshots: list[BinSnapshot] = []
        with self._lock:
            for record in self._records.values():
                if area_id is not None and record.area_id != area_id:
                    continue
                readings = list(self._history[record.bin_id])
                if not readings:
                    readings = [
                        Reading(
                            fill_percent=record.current_fill_percent,
                            recorded_at=record.last_updated or now,
                            status=record.status,
                        )
                    ]
                snapshots.append(
                    BinSnapshot(
                        bin_id=record.bin_id,
                        latitude=record.latitude,
                        longitude=record.longitude,
                        current_fill_percent=record.current_fill_percent,
                        status=record.status,
                        area_name=record.area_name,
                        readings=readings,
                    )
                )
        return snapshots
