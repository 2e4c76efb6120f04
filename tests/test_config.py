"""Tests for YAML config loading, CLI overrides and logging helpers."""

import argparse
import logging

import pytest

from cli_config import apply_overrides
from common.logging_utils import ContextFormatter, Timer, extra_context, safe_url
from constants import Constants, load_config


@pytest.fixture(autouse=True)
def restore_constants(monkeypatch):
    for name in ("ROOT", "FORMULA_PATHS", "FETCH_MAX_CONCURRENCY", "REQUEST_TIMEOUT",
                 "HTTP_RETRY_MAX", "INSTALL_LINK", "LOG_LEVEL"):
        monkeypatch.setattr(Constants, name, getattr(Constants, name))
    for var in ("KEGPLAN_ROOT", "KEGPLAN_FETCH_CONCURRENCY", "KEGPLAN_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr(Constants, "FORMULA_PATHS", [])


class TestLoadConfig:
    def test_missing_file(self, tmp_path):
        assert load_config(str(tmp_path / "absent.yml")) == {}

    def test_values_are_applied(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text(
            "root: /opt/kegs\n"
            "formula_paths: [/srv/formulae]\n"
            "fetch: {concurrency: 8, timeout: 5, retries: 0}\n"
            "install: {link: false}\n"
            "logging: {level: debug}\n",
            encoding="utf-8",
        )
        cfg = load_config(str(path))
        assert cfg["root"] == "/opt/kegs"
        assert Constants.ROOT == "/opt/kegs"
        assert Constants.FORMULA_PATHS == ["/srv/formulae"]
        assert Constants.FETCH_MAX_CONCURRENCY == 8
        assert Constants.REQUEST_TIMEOUT == 5
        assert Constants.HTTP_RETRY_MAX == 1
        assert Constants.INSTALL_LINK is False
        assert Constants.LOG_LEVEL == "DEBUG"

    def test_environment_wins_over_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("KEGPLAN_ROOT", "/from/env")
        monkeypatch.setattr(Constants, "ROOT", "/from/env")
        path = tmp_path / "config.yml"
        path.write_text("root: /from/file\n", encoding="utf-8")
        load_config(str(path))
        assert Constants.ROOT == "/from/env"

    def test_broken_config_is_ignored(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("root: [unclosed\n", encoding="utf-8")
        assert load_config(str(path)) == {}

    def test_non_mapping_is_ignored(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("- just\n- a list\n", encoding="utf-8")
        assert load_config(str(path)) == {}


class TestApplyOverrides:
    def _args(self, **kwargs):
        defaults = {"ROOT": None, "FORMULA_PATH": [], "JOBS": None, "NO_LINK": False, "LOG_LEVEL": None}
        defaults.update(kwargs)
        return argparse.Namespace(**defaults)

    def test_cli_values(self):
        apply_overrides(self._args(ROOT="/cli/root", FORMULA_PATH=["/cli/f"], JOBS=2, NO_LINK=True, LOG_LEVEL="warning"))
        assert Constants.ROOT == "/cli/root"
        assert Constants.FORMULA_PATHS == ["/cli/f"]
        assert Constants.FETCH_MAX_CONCURRENCY == 2
        assert Constants.INSTALL_LINK is False
        assert Constants.LOG_LEVEL == "WARNING"

    def test_invalid_jobs_are_ignored(self, caplog):
        before = Constants.FETCH_MAX_CONCURRENCY
        with caplog.at_level(logging.WARNING):
            apply_overrides(self._args(JOBS=0))
        assert Constants.FETCH_MAX_CONCURRENCY == before
        assert "Ignoring invalid --jobs value" in caplog.text

    def test_unset_values_leave_defaults(self):
        root = Constants.ROOT
        apply_overrides(argparse.Namespace())
        assert Constants.ROOT == root
        assert Constants.INSTALL_LINK is True


class TestLoggingHelpers:
    def test_context_is_appended(self):
        record = logging.LogRecord("x", logging.DEBUG, __file__, 1, "Fetched", None, None)
        record.__dict__.update(extra_context(event="fetch", target="a", skipped=None))
        assert ContextFormatter("%(message)s").format(record) == "Fetched event=fetch target=a"

    def test_plain_record(self):
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "Hello", None, None)
        assert ContextFormatter("[%(levelname)s] %(message)s").format(record) == "[INFO] Hello"

    def test_safe_url(self):
        assert safe_url("https://user:pw@example.com:8443/a.tar.gz?token=1#frag") == "https://example.com:8443/a.tar.gz"

    def test_timer(self):
        with Timer() as timer:
            pass
        assert timer.duration_ms() >= 0
