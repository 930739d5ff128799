"""
Unit tests for configuration and log colors.
"""

import io

import pytest

from devsrv.colors import PLAIN, Palette, detect_color
from devsrv.config import ConfigError, ServerConfig, Verbosity


class TestVerbosity:
    """Tests for Verbosity parsing."""

    @pytest.mark.parametrize("raw, expected", [
        ("none", Verbosity.NONE),
        ("STATUS", Verbosity.STATUS),
        (" short ", Verbosity.SHORT),
        ("Long", Verbosity.LONG),
    ])
    def test_parse(self, raw, expected):
        assert Verbosity.parse(raw) is expected

    def test_parse_unknown(self):
        with pytest.raises(ConfigError, match="Unknown verbosity"):
            Verbosity.parse("loud")

    def test_flags(self):
        assert not Verbosity.NONE.logs_completion
        assert Verbosity.STATUS.logs_completion
        assert not Verbosity.STATUS.logs_body
        assert Verbosity.SHORT.logs_body
        assert Verbosity.LONG.logs_body


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults_are_valid(self):
        config = ServerConfig()
        config.validate()

        assert config.host == "127.0.0.1"
        assert config.verbosity is Verbosity.NONE
        assert config.fallback_extension == ".html"
        assert config.server_name.startswith("dev-srv/")

    def test_from_env(self):
        config = ServerConfig.from_env({
            "DEVSRV_HOST": "0.0.0.0",
            "DEVSRV_READ_TIMEOUT": "7.5",
            "DEVSRV_SHUTDOWN_TIMEOUT": "3",
            "DEVSRV_WORKERS": "8",
            "DEVSRV_VERBOSITY": "short",
            "DEVSRV_LOG_LEVEL": "debug",
        })

        assert config.host == "0.0.0.0"
        assert config.read_timeout == 7.5
        assert config.keep_alive_timeout == 7.5
        assert config.shutdown_timeout == 3.0
        assert config.max_workers == 8
        assert config.verbosity is Verbosity.SHORT
        assert config.log_level == "DEBUG"

    def test_from_env_empty(self):
        config = ServerConfig.from_env({})

        assert config == ServerConfig()

    def test_from_env_bad_number(self):
        with pytest.raises(ConfigError, match="DEVSRV_WORKERS"):
            ServerConfig.from_env({"DEVSRV_WORKERS": "many"})

    @pytest.mark.parametrize("changes", [
        {"backlog": 0},
        {"buffer_size": 10},
        {"read_timeout": 0},
        {"shutdown_timeout": -1},
        {"poll_interval": 0},
        {"min_workers": 0},
        {"min_workers": 4, "max_workers": 2},
        {"queue_size": 0},
        {"body_preview_limit": -1},
        {"fallback_extension": "html"},
        {"log_level": "chatty"},
    ])
    def test_validate_rejects(self, changes):
        config = ServerConfig(**changes)

        with pytest.raises(ConfigError):
            config.validate()

    def test_empty_fallback_extension_allowed(self):
        ServerConfig(fallback_extension="").validate()


class TestConfigError:
    def test_location_prefix(self):
        assert str(ConfigError("bad", "services", 3)) == "services:3: bad"
        assert str(ConfigError("gone", "services")) == "services: gone"
        assert str(ConfigError("plain")) == "plain"

    def test_is_value_error(self):
        assert isinstance(ConfigError("x"), ValueError)


class TestPalette:
    """Tests for log colors."""

    def test_plain_passthrough(self):
        assert PLAIN.red("8080") == "8080"
        assert PLAIN.status(404) == "404"

    def test_enabled_wraps(self):
        palette = Palette(enabled=True)

        assert palette.green(200) == "\033[32m200\033[0m"

    @pytest.mark.parametrize("code, color", [
        (200, "\033[32m"),
        (304, "\033[36m"),
        (404, "\033[33m"),
        (503, "\033[31m"),
    ])
    def test_status_colors(self, code, color):
        assert Palette(enabled=True).status(code).startswith(color)


class TestDetectColor:
    class _Tty(io.StringIO):
        def isatty(self):
            return True

    def test_tty(self):
        assert detect_color(self._Tty(), environ={}) is True

    def test_not_tty(self):
        assert detect_color(io.StringIO(), environ={}) is False

    def test_no_color_env(self):
        assert detect_color(self._Tty(), environ={"NO_COLOR": "1"}) is False
