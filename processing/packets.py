# processing/packets.py
"""
Wire-level handling for the 12-lead ECG patch
- 25-byte packet  = 1 byte index + 12 leads × int16 big-endian (full frame)
- 13-byte packet  = 1 byte sequence key + 12 bytes (half of the 24-byte payload)
- PacketReassembler merges two halves with the same key into one payload
- FrameDecoder turns a 24-byte payload into one Frame (12 floats + sample index)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger("PacketReassembler")

N_LEADS = 12
PAYLOAD_SIZE = N_LEADS * 2          # 24
FULL_PACKET_SIZE = PAYLOAD_SIZE + 1  # 25
HALF_PACKET_SIZE = PAYLOAD_SIZE // 2 + 1  # 13


@dataclass(frozen=True)
class Frame:
    """單一時間點的 12 導程樣本（解碼後即用即丟）"""
    sample_index: float
    leads: Tuple[float, ...]


class PacketReassembler:
    """
    兩段式封包重組：
      - 25 bytes：完整封包，直接回傳 payload（去掉第 0 byte）
      - 13 bytes：以第 0 byte 為 key，第一段暫存、第二段到達時合併並清除
      - 其他長度：靜默丟棄（只計數）
    暫存段預設永不過期；max_pending_age_s > 0 時，送入前先清除過舊的片段。
    """

    def __init__(self, max_pending_age_s: float = 0.0,
                 clock: Callable[[], float] = time.monotonic):
        self.max_pending_age_s = float(max_pending_age_s or 0.0)
        if self.max_pending_age_s < 0:
            raise ValueError(f"max_pending_age_s 不可為負數：{max_pending_age_s}")
        self._clock = clock
        self._pending: Dict[int, Tuple[bytes, float]] = {}

        # 統計
        self.frames_completed = 0
        self.fragments_merged = 0
        self.packets_dropped = 0
        self.fragments_expired = 0

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def pending_keys(self) -> Tuple[int, ...]:
        return tuple(sorted(self._pending))

    def submit(self, packet: bytes) -> Optional[bytes]:
        """送入一個傳輸層封包；湊成完整 frame 時回傳 24-byte payload，否則回傳 None。"""
        packet = bytes(packet)
        size = len(packet)

        if size == FULL_PACKET_SIZE:
            self.frames_completed += 1
            return packet[1:]

        if size != HALF_PACKET_SIZE:
            self.packets_dropped += 1
            logger.debug(f"丟棄長度 {size} 的封包")
            return None

        if self.max_pending_age_s > 0:
            self._expire()

        key = packet[0]
        stored = self._pending.pop(key, None)
        if stored is None:
            self._pending[key] = (packet, self._clock())
            return None

        first_half, _ = stored
        self.fragments_merged += 1
        self.frames_completed += 1
        return first_half[1:] + packet[1:]

    def _expire(self) -> None:
        now = self._clock()
        stale = [k for k, (_, t) in self._pending.items()
                 if now - t > self.max_pending_age_s]
        for k in stale:
            del self._pending[k]
            self.fragments_expired += 1
            logger.debug(f"片段 key={k} 逾時 {self.max_pending_age_s:.2f}s，已清除")

    def reset(self) -> None:
        self._pending.clear()


class FrameDecoder:
    """把 24-byte payload 解成 12 個 int16（big-endian），樣本序號每 frame +1。"""

    _dtype = np.dtype(">i2")

    def __init__(self, start_index: float = 0.0):
        self.next_index = float(start_index)

    def decode(self, payload: bytes) -> Frame:
        if len(payload) != PAYLOAD_SIZE:
            raise ValueError(f"payload 長度必須是 {PAYLOAD_SIZE}，目前為 {len(payload)}")
        values = np.frombuffer(payload, dtype=self._dtype).astype(float)
        frame = Frame(self.next_index, tuple(float(v) for v in values))
        self.next_index += 1.0
        return frame


# ---- 編碼（模擬器與測試用） ----
def encode_frame(index: int, leads: Sequence[int]) -> bytes:
    """12 個導程值 → 25-byte 完整封包（第 0 byte 為序號的低 8 位元）"""
    if len(leads) != N_LEADS:
        raise ValueError(f"需要 {N_LEADS} 個導程值，目前為 {len(leads)}")
    values = np.clip(np.rint(np.asarray(leads, dtype=float)), -32768, 32767)
    return bytes([int(index) & 0xFF]) + values.astype(">i2").tobytes()


def split_frame(packet: bytes) -> Tuple[bytes, bytes]:
    """25-byte 完整封包 → 兩個 13-byte 半封包（共用同一個 key）"""
    if len(packet) != FULL_PACKET_SIZE:
        raise ValueError(f"完整封包長度必須是 {FULL_PACKET_SIZE}，目前為 {len(packet)}")
    key = packet[:1]
    half = PAYLOAD_SIZE // 2
    return key + packet[1:1 + half], key + packet[1 + half:]
