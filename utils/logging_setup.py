import logging
import sys
from pathlib import Path

FMT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level=logging.INFO, log_file=None):
    """level 可為 logging 常數或 "DEBUG"/"info" 等字串；log_file 有給才另寫檔"""
    if isinstance(level, str):
        name = level.strip().upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            raise ValueError(f"未知的 log level：{name!r}")

    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    logging.basicConfig(
        level=level,
        format=FMT,
        handlers=handlers,
        force=True
    )
