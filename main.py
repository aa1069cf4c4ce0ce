# main.py
"""
App entrypoint (headless).
- Loads config.toml (built-in defaults when missing or malformed)
- Builds EcgController + data source (simulator or BLE patch)
- Runs the Qt core event loop; BPM / AFib changes are reported through logging
"""
import argparse
import logging
import signal
import sys
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from PyQt6.QtCore import QCoreApplication, QTimer

from ble_helpers import BleEcgClient
from controllers.ecg_controller import EcgController
from controllers.simulator import SimulatorSource
from utils.logging_setup import setup_logging

logger = logging.getLogger("main")


def load_config(path: Path) -> Dict[str, Any]:
    """讀取 config.toml；檔案不存在或格式錯誤時回傳 {}（使用內建預設值）"""
    path = Path(path)
    if not path.exists():
        logger.warning(f"找不到 {path.name}，將使用內建預設值。")
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        logger.error(f"{path.name} 解析失敗：{e}；將使用內建預設值。")
        return {}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="12-lead ECG BPM / AFib monitor")
    parser.add_argument("--config", type=Path, default=Path("config.toml"),
                        help="path to config.toml")
    parser.add_argument("--source", choices=("sim", "ble"), default=None,
                        help="data source (overrides config 'source')")
    parser.add_argument("--address", default=None,
                        help="BLE address of the patch (overrides config 'address')")
    parser.add_argument("--log-level", default=None,
                        help="debug, info, warning, error (overrides [logging] level)")
    parser.add_argument("--duration", type=float, default=0.0,
                        help="stop after this many seconds (0 = run until Ctrl+C)")
    return parser


def make_source(cfg: Dict[str, Any], kind: str):
    if kind == "ble":
        return BleEcgClient.from_config(cfg)
    return SimulatorSource.from_config(cfg)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # 先用預設值讓 load_config 的警告印得出來，讀完再依設定重設
    setup_logging(args.log_level or "INFO")
    cfg = load_config(args.config)
    log_cfg = cfg.get("logging", {})
    setup_logging(args.log_level or log_cfg.get("level", "INFO"), log_cfg.get("file") or None)

    if args.address:
        cfg["address"] = args.address
    kind = args.source or str(cfg.get("source", "sim"))

    app = QCoreApplication(sys.argv[:1])
    controller = EcgController(cfg)
    controller.attach_source(make_source(cfg, kind))

    controller.afib_changed.connect(
        lambda flagged: logger.info(f"心律：{'⚠ 可能心房顫動' if flagged else '規則'}"))
    controller.status.connect(lambda msg: logger.info(f"[status] {msg}"))

    if not controller.start_stream():
        return 1

    # Ctrl+C：讓 Python 有機會處理訊號
    signal.signal(signal.SIGINT, lambda *_: app.quit())
    keepalive = QTimer()
    keepalive.timeout.connect(lambda: None)
    keepalive.start(200)

    if args.duration > 0:
        QTimer.singleShot(int(args.duration * 1000), app.quit)

    try:
        app.exec()
    finally:
        controller.disconnect_device()
        snap = controller.snapshot()
        logger.info(
            f"結束：frames={snap.frames_decoded}, bpm={snap.bpm_text}, "
            f"afib={snap.afib}, dropped={snap.packets_dropped}, pending={snap.pending_fragments}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
