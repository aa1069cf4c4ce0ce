# processing/rate.py
"""
R-peak indices → RR intervals → BPM
The last valid mean RR is sticky: cycles without a plausible interval keep the previous BPM.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

RR_MIN_S = 0.4
RR_MAX_S = 1.5


def rr_intervals(
    peaks: Sequence[int],
    fs: float,
    rr_min_s: float = RR_MIN_S,
    rr_max_s: float = RR_MAX_S
) -> List[float]:
    """相鄰峰值差 / fs（秒），只保留 [rr_min_s, rr_max_s] 之間的間隔"""
    if len(peaks) < 2:
        return []
    rr = np.diff(np.asarray(peaks, dtype=float)) / float(fs)
    return [float(v) for v in rr if rr_min_s <= v <= rr_max_s]


@dataclass
class RateState:
    last_valid_rr: Optional[float] = None
    current_bpm: Optional[float] = None


class RateEstimator:
    def __init__(self, rr_min_s: float = RR_MIN_S, rr_max_s: float = RR_MAX_S,
                 state: Optional[RateState] = None):
        if not 0 < rr_min_s < rr_max_s:
            raise ValueError(f"RR 範圍不合法：[{rr_min_s}, {rr_max_s}]")
        self.rr_min_s = float(rr_min_s)
        self.rr_max_s = float(rr_max_s)
        self.state = state if state is not None else RateState()

    @classmethod
    def from_config(cls, cfg: dict) -> "RateEstimator":
        r_cfg = cfg.get("rate", {})
        return cls(
            rr_min_s=float(r_cfg.get("rr_min_s", RR_MIN_S)),
            rr_max_s=float(r_cfg.get("rr_max_s", RR_MAX_S)),
        )

    @property
    def bpm(self) -> Optional[float]:
        return self.state.current_bpm

    def intervals(self, peaks: Sequence[int], fs: float) -> List[float]:
        return rr_intervals(peaks, fs, self.rr_min_s, self.rr_max_s)

    def update(self, peaks: Sequence[int], fs: float) -> Optional[float]:
        if len(peaks) >= 2:
            rr = self.intervals(peaks, fs)
            if rr:
                self.state.last_valid_rr = float(np.mean(rr))
        if self.state.last_valid_rr is not None:
            self.state.current_bpm = 60.0 / self.state.last_valid_rr
        return self.state.current_bpm

    def reset(self) -> None:
        self.state.last_valid_rr = None
        self.state.current_bpm = None
