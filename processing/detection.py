# processing/detection.py
"""
R-peak detection over one (already filtered) buffer
derivative → square → moving-window integration → threshold → local maxima
"""

from typing import List

import numpy as np


class RPeakDetector:
    """
    簡化 Pan–Tompkins：
      1) 一階差分   d[i] = y[i+1] - y[i]
      2) 平方       s[i] = d[i]²
      3) 移動平均   window 點、步幅 1，只保留完整視窗
      4) 門檻       mean(integrated) × threshold_factor（每次重算，不跨呼叫）
      5) 嚴格區域極大且超過門檻（不含頭尾）
    回傳的是「積分訊號」座標的索引，只拿來算 RR 間隔。
    """

    def __init__(self, window: int = 150, threshold_factor: float = 1.2):
        if int(window) <= 0:
            raise ValueError(f"window 必須為正整數，目前為 {window}")
        self.window = int(window)
        self.threshold_factor = float(threshold_factor)

    @classmethod
    def from_config(cls, cfg: dict) -> "RPeakDetector":
        d_cfg = cfg.get("detector", {})
        return cls(
            window=int(d_cfg.get("window", 150)),
            threshold_factor=float(d_cfg.get("threshold_factor", 1.2)),
        )

    def integrate(self, filtered) -> np.ndarray:
        y = np.asarray(filtered, dtype=float)
        if y.size < 2:
            return np.empty(0, dtype=float)
        sq = np.diff(y) ** 2
        if sq.size < self.window:
            return np.empty(0, dtype=float)
        return np.convolve(sq, np.ones(self.window), mode="valid") / self.window

    def detect(self, filtered) -> List[int]:
        integ = self.integrate(filtered)
        if integ.size < 3:
            return []
        thr = float(integ.mean()) * self.threshold_factor
        mid = integ[1:-1]
        mask = (mid > thr) & (mid > integ[:-2]) & (mid > integ[2:])
        return [int(i) + 1 for i in np.flatnonzero(mask)]
