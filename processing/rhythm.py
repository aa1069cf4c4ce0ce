# processing/rhythm.py
"""
RR variability → "possible atrial fibrillation" flag (SDNN / RMSSD over fixed thresholds)

mean_rr_source:
  - "signal"    : meanRR = mean of the raw buffered amplitudes, statistics in seconds
                  (legacy behaviour, dimensionally inconsistent)
  - "intervals" : meanRR = mean RR interval, statistics in milliseconds
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from processing.detection import RPeakDetector
from processing.rate import RR_MAX_S, RR_MIN_S, rr_intervals

MEAN_RR_SOURCES = ("signal", "intervals")


@dataclass(frozen=True)
class RhythmResult:
    sdnn: float
    rmssd: float
    flagged: bool
    rr_count: int = 0


NOT_ENOUGH_DATA = RhythmResult(0.0, 0.0, False, 0)


class RhythmClassifier:
    def __init__(
        self,
        detector: Optional[RPeakDetector] = None,
        sdnn_threshold: float = 50.0,
        rmssd_threshold: float = 50.0,
        mean_rr_source: str = "signal",
        rr_min_s: float = RR_MIN_S,
        rr_max_s: float = RR_MAX_S,
    ):
        if mean_rr_source not in MEAN_RR_SOURCES:
            raise ValueError(f"mean_rr_source 必須是 {MEAN_RR_SOURCES} 之一，目前為 {mean_rr_source!r}")
        self.detector = detector or RPeakDetector()
        self.sdnn_threshold = float(sdnn_threshold)
        self.rmssd_threshold = float(rmssd_threshold)
        self.mean_rr_source = mean_rr_source
        self.rr_min_s = float(rr_min_s)
        self.rr_max_s = float(rr_max_s)

    @classmethod
    def from_config(cls, cfg: dict, detector: Optional[RPeakDetector] = None) -> "RhythmClassifier":
        h_cfg = cfg.get("rhythm", {})
        r_cfg = cfg.get("rate", {})
        return cls(
            detector=detector or RPeakDetector.from_config(cfg),
            sdnn_threshold=float(h_cfg.get("sdnn_threshold", 50.0)),
            rmssd_threshold=float(h_cfg.get("rmssd_threshold", 50.0)),
            mean_rr_source=str(h_cfg.get("mean_rr_source", "signal")),
            rr_min_s=float(r_cfg.get("rr_min_s", RR_MIN_S)),
            rr_max_s=float(r_cfg.get("rr_max_s", RR_MAX_S)),
        )

    def classify(self, raw, filtered, fs: float) -> RhythmResult:
        filtered = np.asarray(filtered, dtype=float)
        if filtered.size < 2:
            return NOT_ENOUGH_DATA
        # 獨立重算峰值與 RR（不共用 RateEstimator 的狀態）
        peaks = self.detector.detect(filtered)
        rr = rr_intervals(peaks, fs, self.rr_min_s, self.rr_max_s)
        return self.assess(rr, raw)

    def assess(self, rr_s: Sequence[float], raw=None) -> RhythmResult:
        rr = np.asarray(rr_s, dtype=float)
        if self.mean_rr_source == "intervals":
            rr = rr * 1000.0
            mean_rr = float(rr.mean()) if rr.size else 0.0
        else:
            raw_arr = np.asarray(raw if raw is not None else [], dtype=float)
            mean_rr = float(raw_arr.mean()) if raw_arr.size else 0.0

        sdnn = float(np.sqrt(np.mean((rr - mean_rr) ** 2))) if rr.size else 0.0
        diffs = np.diff(rr)
        rmssd = float(np.sqrt(np.mean(diffs * diffs))) if diffs.size else 0.0
        flagged = sdnn > self.sdnn_threshold or rmssd > self.rmssd_threshold
        return RhythmResult(sdnn, rmssd, flagged, int(rr.size))
