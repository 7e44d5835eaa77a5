"""
Tests for the process entry point.
"""

import logging

import pytest

from card_intake import main as main_module
from card_intake.main import QUIET_ACCESS_PATHS, QuietAccessFilter, main, setup_logging

HEALTH_PATH = next(iter(QUIET_ACCESS_PATHS))


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    access = logging.getLogger("uvicorn.access")
    saved = (root.handlers[:], root.level, access.filters[:], logging.getLogger("card_intake").level)
    yield
    for handler in root.handlers:
        if handler not in saved[0]:
            handler.close()
    root.handlers[:] = saved[0]
    root.setLevel(saved[1])
    access.filters[:] = saved[2]
    logging.getLogger("card_intake").setLevel(saved[3])


def access_record(path: str) -> logging.LogRecord:
    return logging.LogRecord(
        "uvicorn.access", logging.INFO, __file__, 1,
        '%s - "%s %s HTTP/%s" %d', ("127.0.0.1:5000", "POST", path, "1.1", 204), None,
    )


class TestSetupLogging:
    """Test suite for setup_logging."""

    def test_info_level_without_log_file(self, tmp_path, restore_logging):
        setup_logging(debug=False, log_dir=tmp_path / "logs")

        assert logging.getLogger("card_intake").level == logging.INFO
        assert logging.getLogger("httpx").level == logging.WARNING
        assert not (tmp_path / "logs").exists()

    def test_debug_writes_log_file(self, tmp_path, restore_logging):
        setup_logging(debug=True, log_dir=tmp_path / "logs")
        logging.getLogger("card_intake.test").debug("hello from the test")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert logging.getLogger("card_intake").level == logging.DEBUG
        files = list((tmp_path / "logs").glob("card_intake_*.log"))
        assert len(files) == 1
        assert "hello from the test" in files[0].read_text(encoding="utf-8")

    def test_access_filter_added_once(self, tmp_path, restore_logging):
        setup_logging(log_dir=tmp_path)
        setup_logging(log_dir=tmp_path)

        filters = logging.getLogger("uvicorn.access").filters
        assert sum(isinstance(f, QuietAccessFilter) for f in filters) == 1


class TestQuietAccessFilter:
    def test_drops_health_check_lines(self):
        assert QuietAccessFilter().filter(access_record(HEALTH_PATH)) is False
        assert QuietAccessFilter().filter(access_record(f"{HEALTH_PATH}?x=1")) is False

    def test_keeps_other_routes(self):
        assert QuietAccessFilter().filter(access_record("/import-url")) is True

    def test_keeps_records_without_access_args(self):
        record = logging.LogRecord("uvicorn.access", logging.INFO, __file__, 1, "started", None, None)
        assert QuietAccessFilter().filter(record) is True


class TestMain:
    """Test suite for main()."""

    def test_runs_uvicorn_with_overrides(self, tmp_path, monkeypatch, restore_logging):
        monkeypatch.chdir(tmp_path)
        calls = []
        monkeypatch.setattr(main_module.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

        assert main(["--host", "0.0.0.0", "--port", "9123"]) == 0

        app, kwargs = calls[0]
        assert app == "card_intake.api.app:app"
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 9123
        assert kwargs["log_config"] is None

    def test_invalid_config_exits_before_serving(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "system.yaml").write_text("api_port: 0\n", encoding="utf-8")
        monkeypatch.setattr(main_module.uvicorn, "run", lambda *a, **k: pytest.fail("server started"))

        assert main([]) == 2
        assert "api_port" in capsys.readouterr().err
