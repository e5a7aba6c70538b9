from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum, auto
from typing import Optional

from .autocomplete import CompletionKind
from .item import ProjectSummary, Task
from .pickers import Calendar, ListPicker, TextBuffer, TimePicker
from .tasklist import TaskListState
from .wui_env import WuiConfig

SEARCH_SECTION = "Search"
SMALL_SCREEN_WIDTH = 80


class AppMode(Enum):
    NORMAL = auto()
    FILTER_INPUT = auto()
    MODIFY_INPUT = auto()
    ANNOTATE_INPUT = auto()
    NEW_TASK_INPUT = auto()
    HELP = auto()
    CONFIRM = auto()


INPUT_MODES = frozenset(
    {
        AppMode.FILTER_INPUT,
        AppMode.MODIFY_INPUT,
        AppMode.ANNOTATE_INPUT,
        AppMode.NEW_TASK_INPUT,
    }
)

# inputs that offer pickers on tab
COMPLETION_MODES = frozenset(
    {AppMode.FILTER_INPUT, AppMode.MODIFY_INPUT, AppMode.NEW_TASK_INPUT}
)

PENDING_MODES = frozenset(
    {AppMode.CONFIRM, AppMode.MODIFY_INPUT, AppMode.ANNOTATE_INPUT}
)

INPUT_PROMPTS = {
    AppMode.FILTER_INPUT: "Filter: ",
    AppMode.MODIFY_INPUT: "Modify: ",
    AppMode.ANNOTATE_INPUT: "Annotate: ",
    AppMode.NEW_TASK_INPUT: "New Task: ",
}


class LayoutMode(Enum):
    LIST = auto()
    LIST_WITH_SIDEBAR = auto()
    SMALL = auto()
    SMALL_TASK_DETAIL = auto()


def derive_layout(width: int, current: LayoutMode, explicit: LayoutMode) -> LayoutMode:
    """Narrow terminals force SMALL; wider ones restore the last explicit choice."""
    if width <= 0:
        return current
    if width < SMALL_SCREEN_WIDTH:
        if current == LayoutMode.SMALL_TASK_DETAIL:
            return current
        return LayoutMode.SMALL
    return explicit


@dataclass(frozen=True)
class CalendarOverlay:
    picker: Calendar
    origin: AppMode
    insert_pos: int
    field: str = ""


@dataclass(frozen=True)
class TimePickerOverlay:
    picker: TimePicker
    origin: AppMode
    insert_pos: int


@dataclass(frozen=True)
class ListPickerOverlay:
    picker: ListPicker
    origin: AppMode
    insert_pos: int
    kind: CompletionKind
    prefix: str = ""


Overlay = CalendarOverlay | TimePickerOverlay | ListPickerOverlay


@dataclass(frozen=True)
class Section:
    name: str
    filter: str = ""
    sort: str = ""
    reverse: bool = False
    description: str = ""

    @property
    def is_search(self) -> bool:
        return self.name == SEARCH_SECTION

    @property
    def grouping(self) -> str:
        if self.name == "Projects":
            return "project"
        if self.name == "Tags":
            return "tag"
        return ""


def build_sections(config: WuiConfig, search_filter: str = "") -> tuple[Section, ...]:
    sections = [
        Section(
            name=SEARCH_SECTION,
            filter=search_filter,
            description="Search across all tasks",
        )
    ]
    for tab in config.tui.tabs:
        if tab.name == SEARCH_SECTION:
            continue
        sections.append(
            Section(
                name=tab.name,
                filter=tab.filter,
                sort=tab.sort,
                reverse=tab.reverse,
                description=tab.description,
            )
        )
    return tuple(sections)


@dataclass(frozen=True)
class AppState:
    config: WuiConfig = field(compare=False)
    sections: tuple[Section, ...] = ()
    section_index: int = 0
    mode: AppMode = AppMode.NORMAL
    overlay: Optional[Overlay] = None
    layout: LayoutMode = LayoutMode.LIST
    explicit_layout: LayoutMode = LayoutMode.LIST
    width: int = 0
    height: int = 0
    active_filter: str = ""
    search_filter: str = ""
    filter_input: TextBuffer = field(default_factory=TextBuffer)
    modify_input: TextBuffer = field(default_factory=TextBuffer)
    annotate_input: TextBuffer = field(default_factory=TextBuffer)
    new_task_input: TextBuffer = field(default_factory=TextBuffer)
    task_list: TaskListState = field(default_factory=TaskListState)
    projects: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    confirm_action: Optional[str] = None
    # tasks a pending confirmation or modify/annotate input applies to
    pending_tasks: tuple[Task, ...] = ()
    status_message: str = ""
    error_message: str = ""
    loading: bool = False
    generation: int = 0
    filter_submitted: bool = False
    syncing_before_quit: bool = False
    suspended: bool = False
    help_offset: int = 0

    @property
    def section(self) -> Section:
        return self.sections[self.section_index]

    @property
    def keybindings(self) -> dict[str, str]:
        return self.config.tui.keybindings

    def key_is(self, key: str, action: str) -> bool:
        return self.keybindings.get(action) == key

    def buffer(self, mode: AppMode) -> TextBuffer:
        return getattr(self, _BUFFER_FIELDS[mode])

    def with_buffer(self, mode: AppMode, buffer: TextBuffer) -> AppState:
        return replace(self, **{_BUFFER_FIELDS[mode]: buffer})

    def current_buffer(self) -> Optional[TextBuffer]:
        if self.mode not in INPUT_MODES:
            return None
        return self.buffer(self.mode)

    def invariant_violations(self) -> list[str]:
        """Describe every broken state invariant; empty when consistent."""
        problems = []
        if self.overlay is not None:
            if self.mode not in INPUT_MODES:
                problems.append(f"overlay open in mode {self.mode.name}")
            elif self.overlay.origin != self.mode:
                problems.append("overlay writes to a buffer other than the active one")
        if (self.mode == AppMode.CONFIRM) != (self.confirm_action is not None):
            problems.append("pending confirmation without confirm mode or vice versa")
        if self.pending_tasks and self.mode not in PENDING_MODES:
            problems.append(f"pending tasks kept in mode {self.mode.name}")
        if self.task_list.grouped and not self.section.grouping:
            problems.append(f"grouped display in section {self.section.name}")
        if self.task_list.grouping != self.section.grouping:
            problems.append("task list grouping differs from the section")
        count = self.task_list.item_count
        if count and not 0 <= self.task_list.cursor < count:
            problems.append(f"cursor {self.task_list.cursor} outside {count} items")
        if (
            0 < self.width < SMALL_SCREEN_WIDTH
            and self.layout not in (LayoutMode.SMALL, LayoutMode.SMALL_TASK_DETAIL)
        ):
            problems.append(f"layout {self.layout.name} at width {self.width}")
        if self.explicit_layout not in (LayoutMode.LIST, LayoutMode.LIST_WITH_SIDEBAR):
            problems.append("explicit layout must be LIST or LIST_WITH_SIDEBAR")
        return problems


_BUFFER_FIELDS = {
    AppMode.FILTER_INPUT: "filter_input",
    AppMode.MODIFY_INPUT: "modify_input",
    AppMode.ANNOTATE_INPUT: "annotate_input",
    AppMode.NEW_TASK_INPUT: "new_task_input",
}


def initial_state(
    config: WuiConfig, search_filter: str = "", width: int = 0, height: int = 0
) -> AppState:
    sections = build_sections(config, search_filter)
    index = 0 if search_filter or len(sections) == 1 else 1
    section = sections[index]
    explicit = LayoutMode.LIST
    return AppState(
        config=config,
        sections=sections,
        section_index=index,
        width=width,
        height=height,
        layout=derive_layout(width, explicit, explicit),
        explicit_layout=explicit,
        active_filter=section.filter,
        search_filter=search_filter,
        task_list=TaskListState().for_section(
            section.grouping, section.sort, section.reverse
        ),
        loading=True,
    )


# ─── Events ─────────────────────────────────────────────────


@dataclass(frozen=True)
class KeyPress:
    key: str


@dataclass(frozen=True)
class Resize:
    width: int
    height: int


@dataclass(frozen=True)
class TasksLoaded:
    tasks: tuple[Task, ...] = ()
    error: Optional[str] = None
    generation: int = 0


@dataclass(frozen=True)
class ProjectSummaryLoaded:
    summaries: tuple[ProjectSummary, ...] = ()
    error: Optional[str] = None
    generation: int = 0


@dataclass(frozen=True)
class TaskModified:
    error: Optional[str] = None
    message: str = "Task updated successfully"


@dataclass(frozen=True)
class AutocompleteDataLoaded:
    projects: tuple[str, ...] = ()
    tags: tuple[str, ...] = ()
    error: Optional[str] = None


@dataclass(frozen=True)
class SyncCompleted:
    error: Optional[str] = None
    output: str = ""


@dataclass(frozen=True)
class StatusMessage:
    message: str
    is_error: bool = False


@dataclass(frozen=True)
class Refresh:
    pass


Event = (
    KeyPress
    | Resize
    | TasksLoaded
    | ProjectSummaryLoaded
    | TaskModified
    | AutocompleteDataLoaded
    | SyncCompleted
    | StatusMessage
    | Refresh
)
