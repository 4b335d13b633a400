import logging
import os

from clubhouse.utils.logging_config import build_logging_config, setup_logging


def test_config_routes_service_loggers(tmp_path):
    config = build_logging_config(tmp_path, "DEBUG")

    loggers = config["loggers"]
    assert loggers["clubhouse"]["level"] == "DEBUG"
    assert loggers["database"]["level"] == "WARNING"
    assert loggers["clubhouse.services"]["propagate"] is True
    assert loggers["clubhouse.utils.websocket_manager"]["level"] == "DEBUG"
    assert loggers["clubhouse.utils.websocket_manager"]["handlers"] == ["file_realtime"]
    assert config["handlers"]["file_realtime"]["filename"] == str(tmp_path / "realtime.log")
    assert config["handlers"]["file_error"]["level"] == "ERROR"


def test_setup_logging_uses_env_directory_and_prunes(tmp_path, monkeypatch):
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    for suffix in range(1, 6):
        (log_dir / f"app.log.{suffix}").write_text("old", encoding="utf-8")
    monkeypatch.setenv("CLUBHOUSE_LOG_DIR", str(log_dir))
    monkeypatch.setenv("LOG_BACKUP_COUNT", "2")

    assert setup_logging() == log_dir

    assert len(list(log_dir.glob("app.log.*"))) == 2
    notifier = logging.getLogger("clubhouse.utils.websocket_manager")
    assert notifier.isEnabledFor(logging.DEBUG)
    assert not logging.getLogger("database").isEnabledFor(logging.INFO)
    assert os.path.exists(log_dir / "realtime.log")
