import tomllib

import pytest

from wui.shared import expand_command_template, fmt_datetime, log_msg, truncate_string
from wui.wui_env import (
    DEFAULT_KEYBINDINGS,
    WuiConfig,
    WuiEnvironment,
    render_config,
)


@pytest.mark.unit
class TestEnvironment:
    def test_home_from_env(self, wui_home):
        assert WuiEnvironment().home == wui_home

    def test_xdg_fallback(self, monkeypatch, tmp_path):
        monkeypatch.delenv("WUI_HOME", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        assert WuiEnvironment().home == tmp_path / "xdg" / "wui"

    def test_load_creates_default_config(self, wui_home):
        env = WuiEnvironment()
        config = env.load_config()
        assert env.config_path == wui_home / "config.toml"
        assert env.config_path.exists()
        assert config == WuiConfig()

    def test_rendered_config_round_trips(self):
        config = WuiConfig.model_validate(
            {
                "task_bin": "/usr/local/bin/task",
                "tui": {
                    "sidebar_width": 40,
                    "tabs": [{"name": "Home", "filter": 'project:home "quoted"'}],
                    "custom_commands": {
                        "o": {"name": "open", "command": "xdg-open {{.url}}"}
                    },
                },
            }
        )
        parsed = WuiConfig.model_validate(tomllib.loads(render_config(config)))
        assert parsed == config

    def test_user_keybindings_merge_with_defaults(self):
        config = WuiConfig.model_validate({"tui": {"keybindings": {"quit": "Q"}}})
        assert config.tui.keybindings["quit"] == "Q"
        assert config.tui.keybindings["done"] == DEFAULT_KEYBINDINGS["done"]

    def test_empty_tabs_fall_back(self):
        config = WuiConfig.model_validate({"tui": {"tabs": []}})
        assert [t.name for t in config.tui.tabs][:2] == ["Next", "Waiting"]

    def test_invalid_config_uses_defaults(self, wui_home):
        wui_home.mkdir(parents=True)
        (wui_home / "config.toml").write_text("[tui]\nsidebar_width = 500\n")
        assert WuiEnvironment().load_config() == WuiConfig()

    def test_missing_values_are_filled_in(self, wui_home):
        wui_home.mkdir(parents=True)
        path = wui_home / "config.toml"
        path.write_text('task_bin = "task2"\n')
        config = WuiEnvironment().load_config()
        assert config.task_bin == "task2"
        assert "[calendar_sync]" in path.read_text()


@pytest.mark.unit
class TestShared:
    def test_truncate(self):
        assert truncate_string("abcdef", 4) == "abc…"
        assert truncate_string("abc", 4) == "abc"
        assert truncate_string("abc", 0) == ""

    def test_fmt_datetime_drops_midnight(self):
        from datetime import datetime

        assert fmt_datetime(datetime(2025, 3, 14)) == "2025-03-14"
        assert fmt_datetime(datetime(2025, 3, 14, 9, 30)) == "2025-03-14 09:30"
        assert fmt_datetime(None) == ""

    def test_expand_template(self, task_factory):
        task = task_factory("u1", "write", id=7)
        assert expand_command_template("echo {{.id}} {{.uuid}}", task) == "echo 7 u1"

    def test_log_msg_writes_under_home(self, wui_home):
        log_msg("hello from the tests")
        logs = list((wui_home / "logs").glob("log_*.md"))
        assert len(logs) == 1
        text = logs[0].read_text()
        assert "hello from the tests" in text
        assert "test_log_msg_writes_under_home" in text
