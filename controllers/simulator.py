# controllers/simulator.py
"""
SimulatorSource — QTimer-driven stand-in for the BLE patch
Emits 12-lead packets (full 25-byte frames or 13-byte halves) of a synthetic
pulse train, with the same callback interface as ble_helpers.BleEcgClient.
"""

import logging
from typing import Callable, Optional

from PyQt6.QtCore import QObject, QTimer

from utils.synthetic import packetize, pulse_train

logger = logging.getLogger("SimulatorSource")


class SimulatorSource(QObject):
    """簡單心電脈衝模擬：每 tick_ms 送出 fs × tick_ms / 1000 個 frame"""

    def __init__(self, fs: float = 500.0, bpm: float = 60.0, amplitude: float = 1000.0,
                 fragmented: bool = True, tick_ms: int = 20, parent=None):
        super().__init__(parent)
        self.fs = float(fs)
        self.bpm = float(bpm)
        self.amplitude = float(amplitude)
        self.fragmented = bool(fragmented)
        self.tick_ms = int(tick_ms)
        self.frames_per_tick = max(1, int(round(self.fs * self.tick_ms / 1000.0)))

        self.data_callback: Optional[Callable[[bytes], None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None
        self.is_connected = False
        self.is_acquiring = False

        self._pos = 0
        self.timer = QTimer(self)
        self.timer.setInterval(self.tick_ms)
        self.timer.timeout.connect(self._tick)

    @classmethod
    def from_config(cls, cfg: dict, parent=None) -> "SimulatorSource":
        s_cfg = cfg.get("simulator", {})
        return cls(
            fs=float(cfg.get("sampling_rate", 500)),
            bpm=float(s_cfg.get("bpm", 60)),
            amplitude=float(s_cfg.get("amplitude", 1000)),
            fragmented=bool(s_cfg.get("fragmented", True)),
            tick_ms=int(s_cfg.get("tick_ms", 20)),
            parent=parent,
        )

    def connect(self) -> None:
        self.is_connected = True
        logger.info(f"模擬器就緒：{self.bpm:g} bpm, fs={self.fs:g} Hz, 分段={'是' if self.fragmented else '否'}")

    def start_acquisition(self) -> None:
        if not self.is_connected:
            raise RuntimeError("尚未連線，請先呼叫 connect()")
        self.is_acquiring = True
        self.timer.start()

    def stop_acquisition(self) -> None:
        self.timer.stop()
        self.is_acquiring = False

    def close(self) -> None:
        self.stop_acquisition()
        self.is_connected = False

    def _tick(self) -> None:
        n = self.frames_per_tick
        samples = pulse_train(n, fs=self.fs, bpm=self.bpm, amplitude=self.amplitude, start=self._pos)
        for packet in packetize(samples, fragmented=self.fragmented, first_index=self._pos):
            if self.data_callback:
                self.data_callback(packet)
        self._pos += n
