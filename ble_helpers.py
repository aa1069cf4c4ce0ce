# ble_helpers.py
# 與 12 導程 ECG 貼片（BLE notify）互動的輔助類別
# 需求：pip install bleak
"""
Transport collaborator for the ECG patch
- Connect to a configured BLE address (no scanning, no reconnect state machine)
- Subscribe to the ECG characteristic; every notification is forwarded as raw bytes
- bleak runs on a private asyncio loop in a daemon thread; data_callback is called from that thread
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import Callable, Optional

from bleak import BleakClient

logger = logging.getLogger("BleEcgClient")

SERVICE_UUID = "00001812-0000-1000-8000-00805f9b34fb"
CHARACTERISTIC_UUID = "12345678-1234-5678-1234-56789abcdef0"


class BleEcgClient:
    """
    BLE 客戶端：
      - connect()：以設定的位址連線（含重試）
      - start_acquisition()：啟用 notify，收到的封包透過 data_callback(bytes) 丟出
      - on_error: Optional[(Exception)->None]，斷線或回呼出錯時通知
    """

    on_error: Optional[Callable[[Exception], None]] = None

    def __init__(self):
        self.address: Optional[str] = None
        self.service_uuid: str = SERVICE_UUID
        self.characteristic_uuid: str = CHARACTERISTIC_UUID
        self.connect_timeout_s: float = 10.0
        self.retries: int = 3

        self.client: Optional[BleakClient] = None
        self.is_connected: bool = False
        self.is_acquiring: bool = False
        self.packets_received: int = 0

        # data_callback: (bytes) -> None
        self.data_callback: Optional[Callable[[bytes], None]] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[threading.Thread] = None
        self._closing = False

    # ---------- 設定與連線 ----------
    def configure(
        self,
        address: Optional[str] = None,
        service_uuid: Optional[str] = None,
        characteristic_uuid: Optional[str] = None,
        connect_timeout_s: Optional[float] = None,
        retries: Optional[int] = None,
    ):
        if address is not None:
            self.address = address.strip() or None
        if service_uuid:
            self.service_uuid = service_uuid
        if characteristic_uuid:
            self.characteristic_uuid = characteristic_uuid
        if connect_timeout_s is not None:
            self.connect_timeout_s = float(connect_timeout_s)
        if retries is not None:
            self.retries = max(1, int(retries))

    @classmethod
    def from_config(cls, cfg: dict) -> "BleEcgClient":
        b_cfg = cfg.get("ble", {})
        client = cls()
        client.configure(
            address=str(cfg.get("address", "") or ""),
            service_uuid=b_cfg.get("service_uuid"),
            characteristic_uuid=b_cfg.get("characteristic_uuid"),
            connect_timeout_s=b_cfg.get("connect_timeout_s"),
            retries=b_cfg.get("retries"),
        )
        return client

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.new_event_loop()
            self._loop_thread = threading.Thread(
                target=self._loop.run_forever, name="BleEcgLoop", daemon=True
            )
            self._loop_thread.start()
        return self._loop

    def _run(self, coro, timeout: float):
        """在背景 loop 上執行 coroutine，同步等待結果"""
        fut = asyncio.run_coroutine_threadsafe(coro, self._ensure_loop())
        return fut.result(timeout)

    def connect(self, retries: Optional[int] = None, wait_s: float = 1.5) -> None:
        if self.is_connected and self.client:
            logger.info("已連線，略過 connect()")
            return
        if not self.address:
            raise RuntimeError("缺少 address：請在 config.toml 或命令列指定 BLE 位址")

        retries = max(1, int(retries or self.retries))
        last_err: Optional[Exception] = None
        for attempt in range(1, retries + 1):
            try:
                logger.info(f"嘗試連線 {self.address}（第 {attempt}/{retries} 次）…")
                self._run(self._connect_async(), timeout=self.connect_timeout_s + 5.0)
                self.is_connected = True
                logger.info(f"BLE 連線成功：{self.address}")
                return
            except Exception as e:
                last_err = e
                logger.warning(f"第 {attempt}/{retries} 次連線失敗：{e}")
                if attempt < retries:
                    time.sleep(wait_s)

        raise RuntimeError(f"BLE 連線失敗（已重試 {retries} 次）：{last_err}")

    async def _connect_async(self) -> None:
        client = BleakClient(
            self.address,
            disconnected_callback=self._on_disconnected,
            timeout=self.connect_timeout_s,
        )
        await client.connect()
        self.client = client

    # ---------- 資料擷取 ----------
    def start_acquisition(self) -> None:
        if not self.is_connected or self.client is None:
            raise RuntimeError("尚未連線，請先呼叫 connect()")
        if self.is_acquiring:
            logger.info("notify 已啟用，略過 start_acquisition()")
            return
        self._run(
            self.client.start_notify(self.characteristic_uuid, self._on_notify),
            timeout=self.connect_timeout_s,
        )
        self.is_acquiring = True
        logger.info(f"已啟用 notify：{self.characteristic_uuid}")

    def _on_notify(self, _sender, data: bytearray) -> None:
        self.packets_received += 1
        if self.data_callback is None:
            return
        try:
            self.data_callback(bytes(data))
        except Exception as cb_err:
            logger.exception(f"data_callback 發生例外：{cb_err}")
            self._report(cb_err)

    def _on_disconnected(self, _client) -> None:
        was_connected = self.is_connected
        self.is_connected = False
        self.is_acquiring = False
        if was_connected and not self._closing:
            logger.warning(f"裝置已斷線：{self.address}")
            self._report(RuntimeError(f"裝置已斷線：{self.address}"))

    def _report(self, e: Exception) -> None:
        if self.on_error:
            try:
                self.on_error(e)
            except Exception:
                logger.exception("on_error 回呼失敗")

    # ---------- 停止/關閉 ----------
    def stop_acquisition(self) -> None:
        if not self.is_acquiring:
            return
        try:
            if self.client is not None and self.client.is_connected:
                self._run(self.client.stop_notify(self.characteristic_uuid), timeout=5.0)
        except Exception as e:
            logger.debug(f"停止 notify 時出錯: {e}")
        finally:
            self.is_acquiring = False

    def close(self) -> None:
        """關閉連線（會先停止擷取）並結束背景 loop"""
        self._closing = True
        try:
            self.stop_acquisition()
            if self.client is not None:
                try:
                    self._run(self.client.disconnect(), timeout=5.0)
                except Exception as e:
                    logger.debug(f"關閉連線時出錯: {e}")
            self.client = None
            self.is_connected = False
        finally:
            self._stop_loop()
            self._closing = False
        logger.info("BLE 連線已關閉")

    def _stop_loop(self) -> None:
        if self._loop is None:
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        if self._loop_thread is not None:
            self._loop_thread.join(timeout=3.0)
        self._loop.close()
        self._loop = None
        self._loop_thread = None
