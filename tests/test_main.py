import logging
from pathlib import Path

import pytest

pytest.importorskip("PyQt6")

from main import build_parser, load_config, make_source
from utils.logging_setup import setup_logging

CONFIG_PATH = Path(__file__).parent.parent / "config.toml"


def test_missing_config_falls_back_to_defaults(tmp_path):
    assert load_config(tmp_path / "nope.toml") == {}


def test_malformed_config_falls_back_to_defaults(tmp_path):
    bad = tmp_path / "config.toml"
    bad.write_text("sampling_rate = = 500\n", encoding="utf-8")
    assert load_config(bad) == {}


def test_shipped_config_loads():
    cfg = load_config(CONFIG_PATH)
    assert cfg["sampling_rate"] == 500
    assert cfg["source"] == "sim"
    assert cfg["rate"]["refresh_ms"] == 1000


def test_parser_defaults_and_overrides():
    args = build_parser().parse_args([])
    assert args.source is None
    assert args.duration == 0.0

    args = build_parser().parse_args(["--source", "ble", "--address", "AA", "--duration", "2.5"])
    assert args.source == "ble"
    assert args.address == "AA"
    assert args.duration == 2.5


def test_parser_rejects_unknown_source():
    with pytest.raises(SystemExit):
        build_parser().parse_args(["--source", "serial"])


def test_make_source(qapp):
    from ble_helpers import BleEcgClient
    from controllers.simulator import SimulatorSource

    assert isinstance(make_source({}, "sim"), SimulatorSource)
    assert isinstance(make_source({"address": "AA"}, "ble"), BleEcgClient)


def test_setup_logging_accepts_level_names(tmp_path):
    log_file = tmp_path / "logs" / "ecg.log"
    root = logging.getLogger()
    try:
        setup_logging("debug", log_file)
        assert root.level == logging.DEBUG
        assert log_file.exists()
        with pytest.raises(ValueError):
            setup_logging("chatty")
    finally:
        for h in list(root.handlers):
            h.close()
        setup_logging("WARNING")
