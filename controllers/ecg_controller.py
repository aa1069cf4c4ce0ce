# controllers/ecg_controller.py
from __future__ import annotations
"""
EcgController —— 傳輸層封包 → (Qt 主執行緒) EcgPipeline → BPM / AFib 旗標 / 12 導程波形
相依：PyQt6 (QtCore only), numpy；資料來源為 ble_helpers.BleEcgClient 或 controllers.simulator.SimulatorSource

執行緒模型：
  - 資料來源在背景執行緒呼叫 data_callback(bytes)
  - DataBridge 的 Qt 訊號把封包排進主執行緒（queued connection）
  - 1 Hz QTimer 也在主執行緒觸發 → 封包處理與 BPM 重算天然序列化、不會重疊
"""

import logging
from typing import Any, Dict, Optional

from PyQt6.QtCore import QObject, QTimer, pyqtSignal

from processing.pipeline import EcgPipeline, PipelineSnapshot

logger = logging.getLogger("EcgController")


# ========== Qt 資料橋 ==========
class DataBridge(QObject):
    """將背景執行緒（傳輸層）收到的封包送回主執行緒"""
    arrived = pyqtSignal(object)  # bytes


# ========== 主控制器 ==========
class EcgController(QObject):
    """
    把資料來源與 EcgPipeline 接起來：
      - start_stream / stop_stream / disconnect_device
      - 背景回呼 → Qt 訊號 → 主執行緒：重組/解碼/緩衝/逐 frame 心律檢查
      - 每 refresh_ms 重算一次 BPM
    對外只發訊號（畫面端自行訂閱）。
    """

    bpm_changed = pyqtSignal(float)
    afib_changed = pyqtSignal(bool)
    frame_decoded = pyqtSignal(object)  # processing.packets.Frame
    status = pyqtSignal(str)
    _source_failed = pyqtSignal(str)

    def __init__(self, cfg: Dict[str, Any], pipeline: Optional[EcgPipeline] = None,
                 source=None, parent: Optional[QObject] = None):
        super().__init__(parent)
        self.cfg = cfg
        self.pipeline = pipeline or EcgPipeline.from_config(cfg)
        self.source = source

        # --- 橋接：把背景執行緒資料送回主執行緒 ---
        self.bridge = DataBridge()
        self.bridge.arrived.connect(self._on_arrived_mainthread)
        self._source_failed.connect(self._on_source_failed)

        # --- 1 Hz BPM 重算 ---
        refresh_ms = int(cfg.get("rate", {}).get("refresh_ms", 1000))
        self._bpm_timer = QTimer(self)
        self._bpm_timer.setInterval(refresh_ms)
        self._bpm_timer.timeout.connect(self._on_tick)

        # --- 資料吞吐監看（每個 tick 統計封包數；連 2 次 0 就提醒） ---
        self._rx_counter = 0
        self._rx_zero_ticks = 0

        self._last_bpm: Optional[float] = None
        self._last_afib = False
        self._is_streaming = False

    @property
    def is_streaming(self) -> bool:
        return self._is_streaming

    # ------------ 來源 ------------
    def attach_source(self, source) -> None:
        """source 需提供 data_callback / on_error 屬性與 connect / start_acquisition / stop_acquisition / close"""
        self.source = source
        source.data_callback = self.submit_packet
        source.on_error = self._on_source_error

    def submit_packet(self, packet: bytes) -> None:
        """可由任何執行緒呼叫"""
        self.bridge.arrived.emit(bytes(packet))

    # ------------ 控制 ------------
    def start_stream(self) -> bool:
        if self._is_streaming:
            self.status.emit("已在擷取中")
            return True
        if self.source is None:
            self.status.emit("尚未指定資料來源")
            return False
        try:
            self.attach_source(self.source)
            if not getattr(self.source, "is_connected", False):
                self.source.connect()
            self.source.start_acquisition()
        except Exception as e:
            logger.exception(f"開始擷取失敗：{e}")
            self.status.emit(f"開始擷取失敗：{e}")
            return False

        self._rx_counter = 0
        self._rx_zero_ticks = 0
        self._bpm_timer.start()
        self._is_streaming = True
        self.status.emit("擷取中")
        logger.info(f"開始擷取：fs={self.pipeline.fs:g} Hz")
        return True

    def stop_stream(self) -> None:
        self._bpm_timer.stop()
        self._is_streaming = False
        if self.source is not None:
            try:
                self.source.stop_acquisition()
            except Exception as e:
                logger.exception(f"停止擷取失敗：{e}")
                self.status.emit(f"停止擷取失敗：{e}")
                return
        self.status.emit("已停止擷取")

    def disconnect_device(self) -> None:
        self.stop_stream()
        if self.source is not None:
            try:
                self.source.close()
            except Exception as e:
                logger.exception(f"斷線錯誤：{e}")
                self.status.emit(f"斷線錯誤：{e}")
                return
        self.status.emit("已斷線")

    def snapshot(self) -> PipelineSnapshot:
        return self.pipeline.snapshot()

    # ------------ 資料處理（主執行緒）------------
    def _on_arrived_mainthread(self, packet: object) -> None:
        self._rx_counter += 1
        frame = self.pipeline.submit(packet)
        if frame is None:
            return
        self.frame_decoded.emit(frame)
        self._publish_afib()

    def _on_tick(self) -> None:
        bpm = self.pipeline.refresh_bpm()
        if bpm is not None and bpm != self._last_bpm:
            self._last_bpm = bpm
            logger.info(f"BPM：{bpm:.1f}")
            self.bpm_changed.emit(bpm)
        self._publish_afib()
        self._check_throughput()

    def _publish_afib(self) -> None:
        flagged = self.pipeline.afib
        if flagged != self._last_afib:
            self._last_afib = flagged
            self.afib_changed.emit(flagged)

    def _check_throughput(self) -> None:
        rate = self._rx_counter
        self._rx_counter = 0
        logger.debug(f"📡 {rate} packets/tick")
        if not self._is_streaming:
            return
        if rate == 0:
            self._rx_zero_ticks += 1
            if self._rx_zero_ticks == 2:
                logger.warning("未收到資料：請確認裝置電源、連線與通知是否已啟用")
                self.status.emit("⚠ 未收到資料")
        else:
            self._rx_zero_ticks = 0

    def _on_source_error(self, e: Exception) -> None:
        # 可能在背景執行緒被呼叫：只記 log，其餘交給主執行緒處理
        logger.error(f"資料來源中斷：{e}")
        self._source_failed.emit(str(e))

    def _on_source_failed(self, msg: str) -> None:
        self._bpm_timer.stop()
        self._is_streaming = False
        self.status.emit(f"資料擷取中斷：{msg}")
