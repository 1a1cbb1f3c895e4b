import json
import logging

import pytest

from utils import ease_in_out_cubic, load_config, setup_logging


def test_easing_endpoints_and_midpoint():
    assert ease_in_out_cubic(0.0) == 0.0
    assert ease_in_out_cubic(0.5) == pytest.approx(0.5)
    assert ease_in_out_cubic(1.0) == 1.0


def test_easing_is_monotonic_and_clamped():
    values = [ease_in_out_cubic(i / 100) for i in range(101)]
    assert values == sorted(values)
    assert ease_in_out_cubic(-1.0) == 0.0
    assert ease_in_out_cubic(2.0) == 1.0


def test_load_config_round_trip(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"engine": {"particle_count": 10}}))
    assert load_config(str(path))["engine"]["particle_count"] == 10


def test_load_config_reraises_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "nope.json"))
    bad = tmp_path / "bad.json"
    bad.write_text("{not json")
    with pytest.raises(json.JSONDecodeError):
        load_config(str(bad))


def test_setup_logging_creates_log_directory(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    log_file = tmp_path / "logs" / "run.log"
    try:
        setup_logging({"logging": {"level": "debug", "log_file": str(log_file)}})
        assert log_file.parent.is_dir()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
