from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class PipelineMetrics:
    """
    Rolling per-frame telemetry for GaitPipeline.

    Sliding window = last N seconds (default 5s). Each processed frame adds
    one record; ``maybe_log`` emits a summary line every ``log_every_sec``.
    Controlled by config.runtime.log_metrics.

    Timestamps are caller supplied seconds (the pipeline uses
    time.perf_counter()).
    """

    __slots__ = (
        "_window_sec",
        "_log_every_sec",
        "_last_log_ts",
        "_records",  # (ts, poses_in, accepted, active_tracks, events, evicted, proc_ms)
        "_rejections",  # (ts, Counter of reason -> count)
        "_dropped_frames",
    )

    def __init__(self, window_sec: float = 5.0, log_every_sec: float = 5.0) -> None:
        self._window_sec = float(window_sec)
        self._log_every_sec = float(log_every_sec)
        self._last_log_ts: Optional[float] = None
        self._records: List[Tuple[float, int, int, int, int, int, float]] = []
        self._rejections: List[Tuple[float, Counter]] = []
        self._dropped_frames = 0

        logger.info(
            "PipelineMetrics initialised | window=%.1fs log_every=%.1fs",
            self._window_sec,
            self._log_every_sec,
        )

    def record_frame(
        self,
        ts_now: float,
        poses_in: int,
        accepted: int,
        rejection_reasons: Mapping[str, int],
        active_tracks: int,
        step_events: int,
        evicted: int,
        proc_ms: float,
    ) -> None:
        self._records.append(
            (ts_now, poses_in, accepted, active_tracks, step_events, evicted, proc_ms)
        )
        self._rejections.append((ts_now, Counter(rejection_reasons)))
        self._prune(ts_now)

    def record_dropped_frame(self) -> None:
        self._dropped_frames += 1

    @property
    def dropped_frames(self) -> int:
        return self._dropped_frames

    def summary(self) -> Dict[str, float]:
        """
        Averages over the current window.

        Keys: frames, poses_in, accepted, active_tracks, step_events,
        evicted, proc_ms, dropped_frames and one ``rejected.<reason>`` total
        per rejection reason seen in the window.
        """
        n = len(self._records)
        out: Dict[str, float] = {
            "frames": float(n),
            "dropped_frames": float(self._dropped_frames),
        }
        if n == 0:
            return out

        cols = list(zip(*self._records))
        out["poses_in"] = sum(cols[1]) / n
        out["accepted"] = sum(cols[2]) / n
        out["active_tracks"] = sum(cols[3]) / n
        out["step_events"] = float(sum(cols[4]))
        out["evicted"] = float(sum(cols[5]))
        out["proc_ms"] = sum(cols[6]) / n

        totals: Counter = Counter()
        for _, c in self._rejections:
            totals.update(c)
        for reason, count in sorted(totals.items()):
            out[f"rejected.{reason}"] = float(count)
        return out

    def maybe_log(self, ts_now: float) -> None:
        if self._last_log_ts is not None and (ts_now - self._last_log_ts) < self._log_every_sec:
            return
        self._last_log_ts = ts_now

        if not self._records:
            logger.info("PipelineMetrics: no data yet")
            return

        s = self.summary()
        logger.info(
            "PipelineMetrics | frames=%d poses=%.1f accepted=%.1f tracks=%.1f "
            "| steps=%d evicted=%d dropped=%d | proc=%.2fms",
            int(s["frames"]),
            s["poses_in"],
            s["accepted"],
            s["active_tracks"],
            int(s["step_events"]),
            int(s["evicted"]),
            self._dropped_frames,
            s["proc_ms"],
        )

    def reset(self) -> None:
        self._records.clear()
        self._rejections.clear()
        self._dropped_frames = 0

    def _prune(self, ts_now: float) -> None:
        cutoff = ts_now - self._window_sec
        while self._records and self._records[0][0] < cutoff:
            self._records.pop(0)
        while self._rejections and self._rejections[0][0] < cutoff:
            self._rejections.pop(0)
