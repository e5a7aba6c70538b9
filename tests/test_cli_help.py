import importlib
import json
import subprocess

import pytest
from click.testing import CliRunner


@pytest.fixture
def cli_main():
    import wui.cli.main as cli_main

    return importlib.reload(cli_main)


@pytest.mark.unit
def test_help_does_not_require_config(monkeypatch, tmp_path, cli_main):
    home = tmp_path / "home"
    xdg = tmp_path / "xdg"

    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.delenv("WUI_HOME", raising=False)

    runner = CliRunner()
    result = runner.invoke(cli_main.cli, ["--help"])

    assert result.exit_code == 0
    assert "Usage:" in result.output
    assert "--search" in result.output
    assert not (xdg / "wui" / "config.toml").exists()


@pytest.mark.unit
def test_version(cli_main):
    result = CliRunner().invoke(cli_main.cli, ["--version"])
    assert result.exit_code == 0
    assert result.output.startswith("wui version")


@pytest.mark.unit
def test_config_command(tmp_path, cli_main):
    home = tmp_path / "custom"
    result = CliRunner().invoke(cli_main.cli, ["--home", str(home), "config"])
    assert result.exit_code == 0, result.output
    assert (home / "config.toml").exists()
    assert 'task_bin = "task"' in result.output


class _Completed:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


@pytest.mark.unit
def test_export_prints_markdown(monkeypatch, cli_main):
    exported = json.dumps(
        [{"uuid": "u1", "description": "water plants", "project": "home", "tags": ["daily"]}]
    )
    seen = []

    def fake_run(cmd, **kwargs):
        seen.append(cmd)
        return _Completed(stdout=exported)

    monkeypatch.setattr(subprocess, "run", fake_run)
    result = CliRunner().invoke(cli_main.cli, ["export", "--all", "water"])
    assert result.exit_code == 0, result.output
    assert "- [ ] water plants project:home +daily" in result.output
    assert seen == [["task", "status.any:", "water", "export"]]


@pytest.mark.unit
def test_export_reports_backend_errors(monkeypatch, cli_main):
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda cmd, **kwargs: _Completed(returncode=1, stderr="Unknown filter"),
    )
    result = CliRunner().invoke(cli_main.cli, ["export", "bad("])
    assert result.exit_code == 1
