# utils/ring_buffer.py
"""
Bounded buffers for the ECG stream
- WaveformRingBuffer: per-lead (x, y) points for display, drop-oldest
- SampleBuffer: raw amplitudes of the primary lead fed to filter/detector
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterable, List

import numpy as np


@dataclass(frozen=True)
class WaveformPoint:
    x: float
    y: float


class WaveformRingBuffer:
    """每個導程一條固定長度的 FIFO 視窗；滿了就丟最舊的點。"""

    def __init__(self, leads: int = 12, capacity: int = 200):
        if leads <= 0 or capacity <= 0:
            raise ValueError(f"leads/capacity 必須為正整數（leads={leads}, capacity={capacity}）")
        self.capacity = int(capacity)
        self._leads: List[Deque[WaveformPoint]] = [
            deque(maxlen=self.capacity) for _ in range(int(leads))
        ]

    @property
    def leads(self) -> int:
        return len(self._leads)

    def push(self, lead: int, point: WaveformPoint) -> None:
        self._leads[lead].append(point)

    def push_frame(self, x: float, values: Iterable[float]) -> None:
        for lead, y in enumerate(values):
            self._leads[lead].append(WaveformPoint(float(x), float(y)))

    def points(self, lead: int) -> List[WaveformPoint]:
        return list(self._leads[lead])

    def clear(self) -> None:
        for q in self._leads:
            q.clear()


class SampleBuffer:
    """主導程原始樣本（預設 1500 點 ≈ 500 Hz × 3 s）"""

    def __init__(self, capacity: int = 1500):
        if capacity <= 0:
            raise ValueError(f"capacity 必須為正整數，目前為 {capacity}")
        self.capacity = int(capacity)
        self._buf: Deque[float] = deque(maxlen=self.capacity)

    def append(self, value: float) -> None:
        self._buf.append(float(value))

    def to_array(self) -> np.ndarray:
        return np.fromiter(self._buf, dtype=float, count=len(self._buf))

    def clear(self) -> None:
        self._buf.clear()

    def __len__(self) -> int:
        return len(self._buf)
