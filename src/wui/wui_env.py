from pathlib import Path
import json
import os
import tomllib
from pydantic import BaseModel, Field, ValidationError, field_validator
from typing import Optional
from jinja2 import Environment


# ─── Config Schema ─────────────────────────────────────────────────

DEFAULT_KEYBINDINGS: dict[str, str] = {
    "quit": "q",
    "help": "?",
    "up": "k",
    "down": "j",
    "page_up": "ctrl+u",
    "page_down": "ctrl+d",
    "first": "g",
    "last": "G",
    "next_section": "L",
    "prev_section": "H",
    "done": "d",
    "delete": "x",
    "edit": "e",
    "modify": "m",
    "annotate": "a",
    "new": "n",
    "undo": "u",
    "start_stop": "s",
    "export_markdown": "M",
    "filter": "/",
    "refresh": "r",
}


class Column(BaseModel):
    name: str
    label: str = ""


class Tab(BaseModel):
    name: str
    filter: str = ""
    sort: str = ""
    reverse: bool = False
    description: str = ""


class CustomCommand(BaseModel):
    name: str
    command: str
    description: str = ""


def default_tabs() -> list[Tab]:
    return [
        Tab(
            name="Next",
            filter="( status:pending or status:active ) -WAITING",
            sort="urgency",
            description="Next tasks to work on",
        ),
        Tab(name="Waiting", filter="status:waiting", sort="urgency"),
        Tab(
            name="Projects",
            filter="status:pending or status:active",
            sort="urgency",
            description="Tasks grouped by project",
        ),
        Tab(
            name="Tags",
            filter="status:pending or status:active",
            sort="urgency",
            description="Tasks grouped by tag",
        ),
        Tab(
            name="All",
            filter="status:pending or status:waiting or status:active",
            sort="urgency",
        ),
    ]


def default_columns() -> list[Column]:
    return [
        Column(name="id", label="ID"),
        Column(name="project", label="PROJECT"),
        Column(name="priority", label="P"),
        Column(name="due", label="DUE"),
        Column(name="description", label="DESCRIPTION"),
    ]


class TUIConfig(BaseModel):
    sidebar_width: int = Field(33, ge=1, le=100)
    columns: list[Column] = Field(default_factory=default_columns)
    keybindings: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_KEYBINDINGS)
    )
    tabs: list[Tab] = Field(default_factory=default_tabs)
    custom_commands: dict[str, CustomCommand] = {}

    @field_validator("keybindings")
    @classmethod
    def _merge_keybindings(cls, value: dict[str, str]) -> dict[str, str]:
        # user entries override the defaults one action at a time
        merged = dict(DEFAULT_KEYBINDINGS)
        merged.update(value)
        return merged

    @field_validator("tabs")
    @classmethod
    def _default_tabs_when_empty(cls, value: list[Tab]) -> list[Tab]:
        return value or default_tabs()


class CalendarSyncConfig(BaseModel):
    enabled: bool = False
    command: str = ""
    auto_sync_on_quit: bool = False


class WuiConfig(BaseModel):
    title: str = "Wui Configuration"
    task_bin: str = "task"
    taskrc_path: str = ""
    tui: TUIConfig = TUIConfig()
    calendar_sync: CalendarSyncConfig = CalendarSyncConfig()


# ─── Commented Template ────────────────────────────────────
CONFIG_TEMPLATE = """\
title = {{ title | q }}

# the taskwarrior executable and the taskrc handed to it via TASKRC
task_bin = {{ task_bin | q }}
taskrc_path = {{ taskrc_path | q }}

[tui]
# sidebar width as a percentage of the terminal width (1-100)
sidebar_width = {{ tui.sidebar_width }}

# columns shown in the task list, in order
columns = [
{% for col in tui.columns %}  { name = {{ col.name | q }}, label = {{ col.label | q }} },
{% endfor %}]

[tui.keybindings]
# logical action -> key. Printable keys are given as the character
# itself ("/", "?", "G"); other keys use names such as "ctrl+u".
{% for action, key in tui.keybindings.items() %}
{{ action }} = {{ key | q }}
{% endfor %}

# Tabs shown after the built-in Search tab. A tab named "Projects" or
# "Tags" shows its tasks grouped by project or tag.
# sort: "" | alphabetic | due | scheduled | created | modified | urgency
{% for tab in tui.tabs %}
[[tui.tabs]]
name = {{ tab.name | q }}
filter = {{ tab.filter | q }}
sort = {{ tab.sort | q }}
reverse = {{ tab.reverse | lower }}
description = {{ tab.description | q }}
{% endfor %}

# Custom commands run against the task under the cursor, e.g.
#   [tui.custom_commands."o"]
#   name = "open url"
#   command = "xdg-open {{ '{{.url}}' }}"
#   description = "open the url UDA"
{% for key, cmd in tui.custom_commands.items() %}
[tui.custom_commands.{{ key | q }}]
name = {{ cmd.name | q }}
command = {{ cmd.command | q }}
description = {{ cmd.description | q }}
{% endfor %}

[calendar_sync]
# command run to push tasks to a calendar; with auto_sync_on_quit it is
# run before leaving the UI
enabled = {{ calendar_sync.enabled | lower }}
command = {{ calendar_sync.command | q }}
auto_sync_on_quit = {{ calendar_sync.auto_sync_on_quit | lower }}
"""

_jinja = Environment(keep_trailing_newline=True)
# json string literals are valid toml basic strings
_jinja.filters["q"] = json.dumps


def render_config(config: WuiConfig) -> str:
    template = _jinja.from_string(CONFIG_TEMPLATE)
    return template.render(**config.model_dump()).strip() + "\n"


# ─── Save Config with Comments ───────────────────────────────


def save_config_from_template(config: WuiConfig, path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_config(config), encoding="utf-8")
    print(f"✅ Config with comments written to: {path}")


# ─── Main Environment Class ───────────────────────────────


class WuiEnvironment:
    def __init__(self, config_path: Optional[Path] = None):
        self._home = self._resolve_home()
        self._config_path = Path(config_path).expanduser() if config_path else None
        self._config: Optional[WuiConfig] = None

    @property
    def home(self) -> Path:
        return self._home

    @property
    def config_path(self) -> Path:
        return self._config_path or self.home / "config.toml"

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"

    def ensure(self, init_config: bool = True):
        self.home.mkdir(parents=True, exist_ok=True)

        if init_config and not self.config_path.exists():
            save_config_from_template(WuiConfig(), self.config_path)

    def load_config(self) -> WuiConfig:
        # Step 1: Create the file if it doesn't exist
        if not self.config_path.exists():
            config = WuiConfig()
            save_config_from_template(config, self.config_path)
            self._config = config
            return config

        # Step 2: Try to load and validate the config
        try:
            with open(self.config_path, "rb") as f:
                data = tomllib.load(f)
            config = WuiConfig.model_validate(data)
        except (ValidationError, tomllib.TOMLDecodeError) as e:
            print(f"⚠️ Config error in {self.config_path}: {e}\nUsing defaults.")
            self._config = WuiConfig()
            return self._config

        # Step 3: Regenerate the canonical version with any missing defaults
        rendered = render_config(config)
        current_text = self.config_path.read_text(encoding="utf-8")
        if rendered != current_text:
            self.config_path.write_text(rendered, encoding="utf-8")
            print(f"✅ Updated {self.config_path} with any missing defaults.")

        self._config = config
        return config

    @property
    def config(self) -> WuiConfig:
        if self._config is None:
            return self.load_config()
        return self._config

    def _resolve_home(self) -> Path:
        env_home = os.getenv("WUI_HOME")
        if env_home:
            return Path(env_home).expanduser()

        xdg_home = os.getenv("XDG_CONFIG_HOME")
        if xdg_home:
            return Path(xdg_home).expanduser() / "wui"
        else:
            return Path.home() / ".config" / "wui"
