# processing/filters.py
"""
Fixed-coefficient band-pass for R-peak detection
- Direct-form IIR recurrence, recomputed over the whole buffer on every call
  (no state carried between calls; output[0:order] stays 0)
- Default coefficients: Butterworth band-pass (0.5–40 Hz), designed once at construction
- LEGACY_B / LEGACY_A: legacy coefficient set (unstable, kept selectable)
"""

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import signal

logger = logging.getLogger("BandpassFilter")

LEGACY_B = (0.00041655, 0.0, -0.0016662, 0.0, 0.0024993, 0.0, -0.0016662, 0.0, 0.00041655)
LEGACY_A = (1.0, -7.0913, 21.9855, -39.7767, 45.4457, -32.1631, 13.5237, -2.9823, 0.2580)


def design_bandpass(
    fs: float = 500.0,
    band: Tuple[float, float] = (0.5, 40.0),
    order: int = 4
) -> Tuple[np.ndarray, np.ndarray]:
    """Butterworth 帶通（b, a）；order=4 → 8 階 IIR、9 個係數"""
    lo, hi = float(band[0]), float(band[1])
    if not 0 < lo < hi < fs / 2:
        raise ValueError(f"band 必須滿足 0 < low < high < fs/2，目前為 {band}（fs={fs}）")
    b, a = signal.butter(int(order), [lo, hi], btype="bandpass", fs=float(fs))
    return b, a


class BandpassFilter:
    """
    y[i] = Σ b[k]·x[i-k] − Σ a[k]·y[i-k]（i ≥ order），前 order 點輸出為 0
    以 lfiltic 把 x[0:order] 當成歷史輸入、y 歷史全 0，再交給 lfilter 算剩下的部分
    """

    def __init__(self, b: Optional[Sequence[float]] = None, a: Optional[Sequence[float]] = None,
                 fs: float = 500.0):
        if b is None or a is None:
            b, a = design_bandpass(fs)
        b = np.asarray(b, dtype=float)
        a = np.asarray(a, dtype=float)
        if b.ndim != 1 or b.shape != a.shape or b.size < 2:
            raise ValueError(f"b 與 a 必須是等長的一維係數（len(b)={b.size}, len(a)={a.size}）")
        if a[0] == 0:
            raise ValueError("a[0] 不可為 0")
        self.b = b / a[0]
        self.a = a / a[0]
        self.order = self.a.size - 1

        if not self.is_stable():
            logger.warning(f"濾波器係數不穩定（最大極點 |p|={self.max_pole_radius():.4f}），輸出可能發散")

    @classmethod
    def legacy(cls) -> "BandpassFilter":
        return cls(LEGACY_B, LEGACY_A)

    @classmethod
    def from_config(cls, cfg: dict, fs: float) -> "BandpassFilter":
        f_cfg = cfg.get("filter", {})
        kind = str(f_cfg.get("coefficients", "butter")).lower()
        if kind == "legacy":
            return cls.legacy()
        if kind != "butter":
            raise ValueError(f"filter.coefficients 必須是 'butter' 或 'legacy'，目前為 {kind!r}")
        b, a = design_bandpass(
            fs=fs,
            band=tuple(f_cfg.get("band", (0.5, 40.0))),
            order=int(f_cfg.get("order", 4)),
        )
        return cls(b, a)

    def max_pole_radius(self) -> float:
        poles = np.roots(self.a)
        return float(np.max(np.abs(poles))) if poles.size else 0.0

    def is_stable(self) -> bool:
        return self.max_pole_radius() < 1.0

    def apply(self, x) -> np.ndarray:
        """對整段緩衝重新計算（純函數：同一輸入永遠得到同一輸出）"""
        x = np.asarray(x, dtype=float)
        y = np.zeros(x.size, dtype=float)
        n = self.order
        if x.size <= n:
            return y
        zi = signal.lfiltic(self.b, self.a, y=np.zeros(n), x=x[n - 1::-1])
        y[n:], _ = signal.lfilter(self.b, self.a, x[n:], zi=zi)
        return y
