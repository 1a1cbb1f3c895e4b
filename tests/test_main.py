import json
import logging

from main import main


def headless_config(tmp_path, **shape):
    return {
        "logging": {"level": "INFO", "log_file": str(tmp_path / "logs" / "run.log")},
        "engine": {"particle_count": 20, "seed": 1, "initial_pattern": "random", "accelerated": False},
        "shape": shape,
        "run_control": {"headless": True, "max_steps": 4, "form_at_step": 1, "disperse_at_step": 100},
    }


def run_main(tmp_path, monkeypatch, config):
    monkeypatch.setenv("SDL_VIDEODRIVER", "dummy")
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config))
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        main(str(path))
    finally:
        for handler in root.handlers:
            handler.close()
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)
    return (tmp_path / "logs" / "run.log").read_text()


def test_headless_run_survives_an_unreadable_image(tmp_path, monkeypatch):
    log = run_main(tmp_path, monkeypatch, headless_config(tmp_path, image_path=str(tmp_path / "missing.png")))
    assert "Could not form shape" in log
    assert "Reached max_steps (4)" in log
    assert "Shutting Down" in log


def test_headless_run_forms_the_procedural_shape(tmp_path, monkeypatch):
    log = run_main(tmp_path, monkeypatch, headless_config(tmp_path, procedural_size=64))
    assert "Forming shape" in log
    assert "Could not form shape" not in log
