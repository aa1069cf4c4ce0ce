# utils/synthetic.py
"""
Synthetic ECG-like stream for the simulator and tests
- pulse_train(): fast linear rise, slow linear decay, flat baseline between beats
- packetize(): samples → 25-byte frames, or pairs of 13-byte halves
"""

from typing import Iterator, Sequence

import numpy as np

from processing.packets import N_LEADS, encode_frame, split_frame

# 各導程相對振幅（僅為了讓 12 條波形看起來不一樣）
LEAD_GAINS = tuple(1.0 - 0.05 * i for i in range(N_LEADS))


def pulse_train(
    n_samples: int,
    fs: float = 500.0,
    bpm: float = 60.0,
    onset_s: float = 0.5,
    amplitude: float = 1000.0,
    rise_s: float = 0.04,
    fall_s: float = 0.4,
    start: int = 0
) -> np.ndarray:
    """
    第 start 個樣本起、長度 n_samples 的脈衝序列（整數值）。
    每拍：rise_s 內線性升到 amplitude，fall_s 內線性降回 0，其餘為 0。
    """
    period = fs * 60.0 / float(bpm)
    rise = max(1, int(round(rise_s * fs)))
    fall = max(1, int(round(fall_s * fs)))
    t = np.arange(start, start + n_samples, dtype=float)
    phase = np.mod(t - onset_s * fs, period)
    y = np.where(
        phase <= rise,
        amplitude * phase / rise,
        np.where(phase <= rise + fall, amplitude * (1.0 - (phase - rise) / fall), 0.0),
    )
    return np.rint(y)


def packetize(samples: Sequence[float], fragmented: bool = True,
              first_index: int = 0) -> Iterator[bytes]:
    """每個樣本 → 一個 frame（12 導程按 LEAD_GAINS 縮放）；fragmented 時拆成兩個半封包"""
    for i, v in enumerate(samples):
        packet = encode_frame(first_index + i, [v * g for g in LEAD_GAINS])
        if fragmented:
            yield from split_frame(packet)
        else:
            yield packet
