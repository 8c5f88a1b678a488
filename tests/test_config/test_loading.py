import json
from pathlib import Path

import pytest
import structlog

import screen_pilot.config as config_module
from screen_pilot.config import Config, LoggingConfig
from screen_pilot.exceptions import ConfigurationError
from screen_pilot.logging import configure_logging, get_logger, set_log_sink, task_context


def test_defaults_match_agent_constants():
    cfg = Config()

    assert cfg.agent.max_steps == 300
    assert cfg.agent.lookback == 7
    assert cfg.agent.tool_error_policy == "inject"
    assert cfg.agent.first_chunk_policy == "user_only"
    assert cfg.completion.max_attempts_before_force == 3
    assert cfg.transport.max_images == 95
    assert cfg.transport.max_payload_bytes == 18 * 1024 * 1024
    assert cfg.transport.image_cache_size == 7


def test_load_prefers_local_config_yaml(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("agent:\n  max_steps: 50\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    local_cfg = tmp_path / "config.yaml"
    local_cfg.write_text(
        (
            "agent:\n"
            "  max_steps: 120\n"
            "  tool_error_policy: raise\n"
            "transport:\n"
            "  max_images: 40\n"
        ),
        encoding="utf-8",
    )

    cfg = Config.load()

    assert cfg.agent.max_steps == 120
    assert cfg.agent.tool_error_policy == "raise"
    assert cfg.transport.max_images == 40


def test_load_falls_back_to_default_path_when_no_local(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)

    home_cfg = tmp_path / "home_config.yaml"
    home_cfg.write_text("retry:\n  max_attempts: 5\n  initial_delay: 0.1\n", encoding="utf-8")
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", home_cfg)

    cfg = Config.load()

    assert cfg.retry.max_attempts == 5
    assert cfg.retry.initial_delay == 0.1


def test_env_overrides_nested_values(monkeypatch, tmp_path: Path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_PATH", tmp_path / "missing.yaml")
    monkeypatch.setenv("PILOT_AGENT__LOOKBACK", "4")

    cfg = Config.load()

    assert cfg.agent.lookback == 4


def test_save_round_trips_through_yaml(tmp_path: Path):
    path = tmp_path / "nested" / "config.yaml"
    cfg = Config()
    cfg.completion.max_history_items = 60

    cfg.save(path)
    loaded = Config.from_yaml(path)

    assert loaded.completion.max_history_items == 60


def test_invalid_yaml_raises_configuration_error(tmp_path: Path):
    path = tmp_path / "config.yaml"
    path.write_text("agent: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        Config.from_yaml(path)


def test_log_sink_receives_rendered_events(monkeypatch):
    lines: list[str] = []
    monkeypatch.setattr(
        config_module,
        "_config",
        Config(logging=LoggingConfig(level="DEBUG", format="json")),
    )
    set_log_sink(lines.append)
    try:
        configure_logging()
        get_logger("test_sink").info("Sink check", step=3)
    finally:
        set_log_sink(None)
        structlog.reset_defaults()

    assert len(lines) == 1
    event = json.loads(lines[0])
    assert event["event"] == "Sink check"
    assert event["step"] == 3


def _capture_json_events(emit) -> list[dict]:
    lines: list[str] = []
    set_log_sink(lines.append)
    try:
        configure_logging(LoggingConfig(level="INFO", format="json"))
        emit()
    finally:
        set_log_sink(None)
        structlog.reset_defaults()
    return [json.loads(line) for line in lines]


def test_inline_screenshots_are_logged_as_size_markers():
    data_uri = "data:image/png;base64," + "A" * 800
    bare = "QUJD" * 200

    (event,) = _capture_json_events(
        lambda: get_logger("test_images").info("Screenshot", screenshot=data_uri, raw=bare, url="https://cdn/x.png")
    )

    assert event["screenshot"] == "<image 600 bytes>"
    assert event["raw"] == "<image 600 bytes>"
    assert event["url"] == "https://cdn/x.png"


def test_task_context_binds_session_and_task_ids():
    def emit():
        with task_context("session_1", "task_1"):
            get_logger("test_context").info("Inside")
        get_logger("test_context").info("Outside")

    inside, outside = _capture_json_events(emit)

    assert (inside["session_id"], inside["task_id"]) == ("session_1", "task_1")
    assert "session_id" not in outside
