from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Protocol

from binroute.config import PredictionPolicy
from binroute.models.schemas import PredictionResult, Reading, as_utc

LOGGER = logging.getLogger(__name__)


class Predictor(Protocol):
    def predict(
        self,
        bin_id: str,
        history: Sequence[Reading],
        *,
        now: datetime | None = None,
    ) -> PredictionResult: ...


def _hours_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 3600.0


def newest_first(bin_id: str, history: Sequence[Reading]) -> list[Reading]:
    """Return `history` ordered by `recorded_at` descending.

    Callers are expected to pass newest-first readings already. Out of order
    input is logged and re-sorted; the sort is stable so readings sharing a
    timestamp keep their relative order.
    """
    ordered = sorted(history, key=lambda reading: reading.recorded_at, reverse=True)
    if any(a is not b for a, b in zip(ordered, history, strict=True)):
        LOGGER.warning("Readings for %s were not newest-first; re-sorted %d readings", bin_id, len(ordered))
    return ordered


class OverflowPredictor:
    """Linear-trend overflow forecast over a short window of bin readings."""

    def __init__(self, policy: PredictionPolicy | None = None) -> None:
        self.policy = policy or PredictionPolicy()

    def predict(
        self,
        bin_id: str,
        history: Sequence[Reading],
        *,
        now: datetime | None = None,
    ) -> PredictionResult:
        """Predict when a bin will reach 100% fill.

        Args:
            bin_id: Identifier echoed back in the result.
            history: Recent readings for the bin, newest first.
            now: Reference time for the freshness window. Defaults to the
                current UTC time.

        Returns:
            A `PredictionResult`. Faulty sensors, thin data and flat or
            emptying trends are reported through `prediction_status` and a
            null `predicted_overflow_at`; nothing is raised.
        """
        policy = self.policy
        now = as_utc(now) if now is not None else datetime.now(tz=UTC)
        result = PredictionResult(bin_id=bin_id)

        if not history:
            return result

        readings = newest_first(bin_id, history)
        latest = readings[0]
        result.current_fill = latest.fill_percent

        if latest.status == "OFFLINE":
            result.prediction_status = "OFFLINE"
            return result
        if latest.status == "BLOCKED":
            result.prediction_status = "BLOCKED"
            return result

        valid = [
            reading
            for reading in readings
            if reading.status == "NORMAL"
            and _hours_between(now, reading.recorded_at) <= policy.freshness_window_hours
        ]
        if len(valid) < policy.min_readings:
            return result

        newest = valid[0]
        oldest = valid[-1]
        time_diff_hours = _hours_between(newest.recorded_at, oldest.recorded_at)
        fill_diff = newest.fill_percent - oldest.fill_percent

        result.prediction_status = "VALID"

        # Flat or being emptied: no overflow risk.
        if fill_diff <= 0 or time_diff_hours <= 0:
            return result

        if fill_diff > policy.jump_threshold_percent and time_diff_hours < policy.jump_window_hours:
            LOGGER.info(
                "Ignoring fill jump of %.1f%% over %.2fh for %s (dumping event)",
                fill_diff,
                time_diff_hours,
                bin_id,
            )
            return result

        rate = fill_diff / time_diff_hours
        result.fill_rate_per_hour = round(rate, 2)

        hours_to_overflow = (100.0 - newest.fill_percent) / rate
        if hours_to_overflow > policy.max_prediction_hours:
            return result

        result.predicted_overflow_at = newest.recorded_at + timedelta(hours=hours_to_overflow)
        return result


def predict_bin_overflow(
    bin_id: str,
    history: Sequence[Reading],
    *,
    policy: PredictionPolicy | None = None,
    now: datetime | None = None,
) -> PredictionResult:
    return OverflowPredictor(policy).predict(bin_id, history, now=now)
