from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from functools import cmp_to_key
from typing import Iterable, Optional

from .item import ProjectSummary, Task

NO_GROUP = "(none)"

SORT_ALIASES = {
    "alpha": "alphabetic",
    "description": "alphabetic",
    "entry": "created",
}


@dataclass(frozen=True)
class TaskGroup:
    """
    A project or tag with its tasks. For projects, `tasks` covers the whole
    subtree: the group "home" also holds the tasks of "home.garden".
    """

    name: str
    tasks: tuple[Task, ...] = ()
    percentage: Optional[int] = None
    depth: int = 0
    parent: Optional[str] = None

    @property
    def count(self) -> int:
        return len(self.tasks)

    @property
    def label(self) -> str:
        # the last segment, for indented display
        return self.name.rsplit(".", 1)[-1] if self.depth else self.name


def _fold(name: str) -> tuple:
    return (name.lower(), name)


def group_by_project(
    tasks: Iterable[Task], summaries: Iterable[ProjectSummary] = ()
) -> list[TaskGroup]:
    members: dict[str, list[Task]] = {}
    orphans: list[Task] = []
    for task in tasks:
        if not task.project:
            orphans.append(task)
            continue
        parts = task.project.split(".")
        for i in range(1, len(parts) + 1):
            members.setdefault(".".join(parts[:i]), []).append(task)

    percentages = {s.name: s.percentage for s in summaries}
    for name in percentages:
        parts = name.split(".")
        for i in range(1, len(parts) + 1):
            members.setdefault(".".join(parts[:i]), [])

    # sorting on the segment tuple lists every parent right before its children
    ordered = sorted(members, key=lambda n: tuple(_fold(p) for p in n.split(".")))
    groups = []
    for name in ordered:
        depth = name.count(".")
        groups.append(
            TaskGroup(
                name=name,
                tasks=tuple(members[name]),
                percentage=percentages.get(name),
                depth=depth,
                parent=name.rsplit(".", 1)[0] if depth else None,
            )
        )
    if orphans:
        groups.append(TaskGroup(name=NO_GROUP, tasks=tuple(orphans)))
    return groups


def group_by_tag(tasks: Iterable[Task]) -> list[TaskGroup]:
    """One group per tag; a task with several tags shows up in each of them."""
    members: dict[str, list[Task]] = {}
    untagged: list[Task] = []
    for task in tasks:
        if not task.tags:
            untagged.append(task)
        for tag in task.tags:
            members.setdefault(tag, []).append(task)
    groups = [
        TaskGroup(name=tag, tasks=tuple(members[tag]))
        for tag in sorted(members, key=_fold)
    ]
    if untagged:
        groups.append(TaskGroup(name=NO_GROUP, tasks=tuple(untagged)))
    return groups


def _compare_dates(a: Optional[datetime], b: Optional[datetime]) -> int:
    # missing dates sort after present ones
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    return (a > b) - (a < b)


def compare_tasks(a: Task, b: Task, method: str) -> int:
    method = SORT_ALIASES.get(method, method)
    match method:
        case "alphabetic":
            x, y = a.description.lower(), b.description.lower()
            return (x > y) - (x < y)
        case "due" | "scheduled" | "modified" | "created":
            attr = "entry" if method == "created" else method
            return _compare_dates(getattr(a, attr), getattr(b, attr))
        case "urgency":
            return (a.urgency < b.urgency) - (a.urgency > b.urgency)
    return 0


def sort_tasks(tasks: Iterable[Task], method: str = "", reverse: bool = False) -> list[Task]:
    """
    Stable sort: completed tasks always follow the rest, then *method* decides.
    *reverse* flips only the method's comparison.
    """

    def _cmp(a: Task, b: Task) -> int:
        if a.is_completed != b.is_completed:
            return 1 if a.is_completed else -1
        if not method:
            return 0
        result = compare_tasks(a, b, method)
        return -result if reverse else result

    return sorted(tasks, key=cmp_to_key(_cmp))


def extract_unique_projects(tasks: Iterable[Task]) -> tuple[str, ...]:
    return tuple(sorted({t.project for t in tasks if t.project}, key=_fold))


def extract_unique_tags(tasks: Iterable[Task]) -> tuple[str, ...]:
    return tuple(sorted({tag for t in tasks for tag in t.tags}, key=_fold))


@dataclass(frozen=True)
class TaskListState:
    """
    The loaded tasks plus what is shown of them: either groups (while
    `grouping` is set and no group is open) or a sorted flat list.
    `selected` keeps uuids in the order they were marked.
    """

    tasks: tuple[Task, ...] = ()
    visible: tuple[Task, ...] = ()
    groups: tuple[TaskGroup, ...] = ()
    summaries: tuple[ProjectSummary, ...] = ()
    grouping: str = ""
    selected_group: Optional[str] = None
    cursor: int = 0
    selected: tuple[str, ...] = ()
    sort: str = ""
    reverse: bool = False
    page_size: int = field(default=10, compare=False)

    @property
    def grouped(self) -> bool:
        return bool(self.grouping) and self.selected_group is None

    @property
    def item_count(self) -> int:
        return len(self.groups) if self.grouped else len(self.visible)

    @property
    def current_task(self) -> Optional[Task]:
        if self.grouped or not self.visible:
            return None
        return self.visible[self.cursor]

    @property
    def current_group(self) -> Optional[TaskGroup]:
        if not self.grouped or not self.groups:
            return None
        return self.groups[self.cursor]

    def _compute_groups(self) -> tuple[TaskGroup, ...]:
        if self.grouping == "project":
            return tuple(group_by_project(self.tasks, self.summaries))
        if self.grouping == "tag":
            return tuple(group_by_tag(self.tasks))
        return ()

    def _clamped(self) -> TaskListState:
        count = self.item_count
        cursor = min(self.cursor, count - 1) if count else 0
        return replace(self, cursor=max(cursor, 0))

    def _refresh(self) -> TaskListState:
        groups = self._compute_groups()
        if self.grouping and self.selected_group is not None:
            members = next((g.tasks for g in groups if g.name == self.selected_group), ())
        else:
            members = self.tasks
        visible = tuple(sort_tasks(members, self.sort, self.reverse))
        present = {t.uuid for t in visible}
        selected = tuple(u for u in self.selected if u in present)
        return replace(self, groups=groups, visible=visible, selected=selected)._clamped()

    def for_section(self, grouping: str, sort: str, reverse: bool) -> TaskListState:
        """Reset for a new section; tasks stay until the next load replaces them."""
        return replace(
            self,
            grouping=grouping,
            sort=sort,
            reverse=reverse,
            selected_group=None,
            cursor=0,
            selected=(),
            groups=(),
        )._refresh()

    def load(self, tasks: Iterable[Task]) -> TaskListState:
        return replace(self, tasks=tuple(tasks))._refresh()

    def with_summaries(self, summaries: Iterable[ProjectSummary]) -> TaskListState:
        return replace(self, summaries=tuple(summaries))._refresh()

    def drill_down(self) -> TaskListState:
        group = self.current_group
        if group is None:
            return self
        return replace(self, selected_group=group.name, cursor=0, selected=())._refresh()

    def back_to_groups(self) -> TaskListState:
        if self.selected_group is None:
            return self
        name = self.selected_group
        state = replace(self, selected_group=None, selected=())._refresh()
        index = next((i for i, g in enumerate(state.groups) if g.name == name), 0)
        return replace(state, cursor=index)

    def move(self, delta: int) -> TaskListState:
        return replace(self, cursor=self.cursor + delta)._clamped()

    def first(self) -> TaskListState:
        return replace(self, cursor=0)

    def last(self) -> TaskListState:
        return replace(self, cursor=max(self.item_count - 1, 0))

    def page(self, direction: int) -> TaskListState:
        return self.move(direction * self.page_size)

    def toggle_selection(self) -> TaskListState:
        task = self.current_task
        if task is None:
            return self
        if task.uuid in self.selected:
            return replace(self, selected=tuple(u for u in self.selected if u != task.uuid))
        return replace(self, selected=self.selected + (task.uuid,))

    def clear_selection(self) -> TaskListState:
        return replace(self, selected=())

    def selected_tasks(self) -> list[Task]:
        """The marked tasks in marking order, else the task under the cursor."""
        if self.grouped:
            return []
        if self.selected:
            by_uuid = {t.uuid: t for t in self.visible}
            return [by_uuid[u] for u in self.selected if u in by_uuid]
        task = self.current_task
        return [task] if task is not None else []
