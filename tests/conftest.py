"""
Shared pytest fixtures for wui tests.

This module provides common fixtures used across all test files, including:
- An isolated WUI_HOME so config and logs never touch the real home
- Time freezing utilities
- A FakeBackend standing in for the taskwarrior binary
- Task and state factories
"""

from datetime import datetime, timezone

import pytest
from freezegun import freeze_time

from wui.item import ProjectSummary, Task
from wui.model import BackendError
from wui.controller import switch_section, transition
from wui.state import TasksLoaded, initial_state
from wui.wui_env import WuiConfig


@pytest.fixture(autouse=True)
def wui_home(tmp_path, monkeypatch):
    """Every test gets its own WUI_HOME."""
    home = tmp_path / "wui_home"
    monkeypatch.setenv("WUI_HOME", str(home))
    return home


@pytest.fixture
def frozen_time():
    """
    Freezes time to 2025-03-14 09:30:00 for the duration of the test.

    Usage:
        def test_something(frozen_time):
            frozen_time.tick(delta=timedelta(days=1))
    """
    with freeze_time("2025-03-14 09:30:00") as frozen:
        yield frozen


class FakeBackend:
    """
    Records every call instead of running taskwarrior.

    `fail` maps a method name to either an error message (every call fails)
    or a set of uuids whose calls fail.
    """

    def __init__(self, tasks=(), summaries=()):
        self.tasks = list(tasks)
        self.summaries = list(summaries)
        self.calls: list[tuple] = []
        self.fail: dict[str, object] = {}
        self.added_uuid = "new-uuid"

    def _record(self, name: str, *args):
        self.calls.append((name, *args))
        rule = self.fail.get(name)
        if rule is None:
            return
        if isinstance(rule, str):
            raise BackendError(rule)
        if args and args[0] in rule:
            raise BackendError(f"{name} failed for {args[0]}")

    def export(self, filter_text):
        self._record("export", filter_text)
        return list(self.tasks)

    def done(self, uuid):
        self._record("done", uuid)

    def delete(self, uuid):
        self._record("delete", uuid)

    def start(self, uuid):
        self._record("start", uuid)

    def stop(self, uuid):
        self._record("stop", uuid)

    def undo(self):
        self._record("undo")

    def modify(self, uuid, modifications):
        self._record("modify", uuid, modifications)

    def annotate(self, uuid, text):
        self._record("annotate", uuid, text)

    def add(self, description):
        self._record("add", description)
        return self.added_uuid

    def edit(self, uuid):
        self._record("edit", uuid)

    def project_summary(self):
        self._record("project_summary")
        return list(self.summaries)

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def backend():
    return FakeBackend()


def make_task(uuid: str, description: str = "", **fields) -> Task:
    """Build a Task; date fields may be given as 'YYYY-MM-DD' strings."""
    for name in ("due", "scheduled", "wait", "start", "entry", "modified", "end"):
        value = fields.get(name)
        if isinstance(value, str):
            fields[name] = datetime.fromisoformat(value).replace(tzinfo=timezone.utc)
    if "tags" in fields:
        fields["tags"] = tuple(fields["tags"])
    return Task(uuid=uuid, description=description or f"task {uuid}", **fields)


@pytest.fixture
def task_factory():
    return make_task


@pytest.fixture
def sample_tasks():
    return [
        make_task("a", "write report", id=1, project="work", tags=["office"], urgency=5.0),
        make_task("b", "fix bike", id=2, project="home.garage", due="2025-03-10", urgency=8.0),
        make_task("c", "plant seeds", id=3, project="home.garden", tags=["outside"]),
        make_task("d", "call mom", id=4, tags=["phone", "family"], urgency=2.0),
    ]


@pytest.fixture
def sample_summaries():
    return [
        ProjectSummary("home", 40),
        ProjectSummary("home.garage", 0),
        ProjectSummary("home.garden", 50),
        ProjectSummary("work", 75),
    ]


@pytest.fixture
def config():
    return WuiConfig()


@pytest.fixture
def state_factory(config):
    """
    Returns a function building an AppState with its section index set and
    optionally some tasks already loaded.
    """

    def _create(section: str = "Next", tasks=(), width: int = 120, height: int = 40, cfg=None):
        cfg = cfg or config
        state = initial_state(cfg, width=width, height=height)
        names = [s.name for s in state.sections]
        state, _ = switch_section(state, names.index(section))
        state, _ = transition(state, TasksLoaded(tuple(tasks), generation=state.generation))
        return state

    return _create
