from __future__ import annotations

import contextlib
from datetime import date

from rich import box
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.widgets import Static

from .controller import CHROME_ROWS, Controller
from .item import DATE_PROPERTIES, Task
from .model import TaskBackend
from .shared import fmt_datetime, log_msg, truncate_string
from .state import (
    INPUT_PROMPTS,
    AppMode,
    AppState,
    CalendarOverlay,
    KeyPress,
    LayoutMode,
    ListPickerOverlay,
    Resize,
    TimePickerOverlay,
)
from .tasklist import TaskGroup

# Color hex values for readability
LEMON_CHIFFON = "#FFFACD"
KHAKI = "#F0E68C"
LIGHT_SKY_BLUE = "#87CEFA"
DARK_GRAY = "#A9A9A9"
LIME_GREEN = "#32CD32"
GOLDENROD = "#DAA520"
TOMATO = "#FF6347"
ORANGE_RED = "#FF4500"

HEADER_STYLE = f"bold {LIGHT_SKY_BLUE}"
CURSOR_STYLE = "reverse"
SELECTED_MARK = "●"
ACTIVE_STYLE = LIME_GREEN
OVERDUE_STYLE = TOMATO
COMPLETED_STYLE = f"dim {DARK_GRAY}"
ERROR_STYLE = f"bold {ORANGE_RED}"
STATUS_STYLE = KHAKI

SEARCH_HINT = """\
Search across all tasks

Press / to enter a search filter

Examples:
  bug                     search for 'bug' in all tasks
  project:home            tasks in the 'home' project
  status:completed        completed tasks only
  +urgent due.before:eom  urgent tasks due before the end of the month"""


def visible_window(cursor: int, count: int, rows: int) -> tuple[int, int]:
    """The [start, end) slice of `count` items that keeps `cursor` on screen."""
    rows = max(rows, 1)
    start = max(0, cursor - rows + 1)
    return start, min(start + rows, count)


def list_rows(state: AppState) -> int:
    rows = state.height - CHROME_ROWS if state.height else 20
    if state.mode in INPUT_PROMPTS:
        rows -= 2
    return max(rows, 1)


def render_tabs(state: AppState) -> Text:
    text = Text()
    for i, section in enumerate(state.sections):
        label = f" {i + 1}:{section.name} "
        if i == state.section_index:
            text.append(label, style=f"bold reverse {LIGHT_SKY_BLUE}")
        else:
            text.append(label, style=DARK_GRAY)
    if state.loading:
        text.append("  loading…", style=f"italic {DARK_GRAY}")
    return text


def _cell(task: Task, column: str) -> str:
    if column in DATE_PROPERTIES:
        return fmt_datetime(getattr(task, column))
    return task.get_property(column) or ""


def _task_style(task: Task) -> str:
    if task.is_completed:
        return COMPLETED_STYLE
    if task.is_active:
        return ACTIVE_STYLE
    if task.is_overdue():
        return OVERDUE_STYLE
    return ""


def render_task_table(state: AppState) -> RenderableType:
    task_list = state.task_list
    if not task_list.visible:
        if state.section.is_search and not state.active_filter:
            return Text(SEARCH_HINT, style=DARK_GRAY)
        return Text("No tasks", style=DARK_GRAY)

    small = state.layout == LayoutMode.SMALL
    columns = state.config.tui.columns
    if small:
        columns = [c for c in columns if c.name in ("id", "description")]

    table = Table(box=None, expand=True, show_edge=False, pad_edge=False)
    table.add_column(" ", width=1, no_wrap=True)
    for column in columns:
        if column.name == "description":
            table.add_column(column.label or column.name, ratio=1, no_wrap=True)
        else:
            table.add_column(column.label or column.name, no_wrap=True)

    start, end = visible_window(task_list.cursor, len(task_list.visible), list_rows(state))
    selected = set(task_list.selected)
    for index in range(start, end):
        task = task_list.visible[index]
        mark = SELECTED_MARK if task.uuid in selected else ""
        style = _task_style(task)
        if index == task_list.cursor:
            style = f"{style} {CURSOR_STYLE}".strip()
        values = [_cell(task, column.name) for column in columns]
        table.add_row(mark, *values, style=style)
    return table


def _group_label(group: TaskGroup) -> str:
    return f"{'  ' * group.depth}{group.label}"


def render_groups(state: AppState) -> RenderableType:
    task_list = state.task_list
    if not task_list.groups:
        return Text("No groups", style=DARK_GRAY)
    table = Table(box=None, expand=True, show_edge=False, pad_edge=False)
    title = "PROJECT" if task_list.grouping == "project" else "TAG"
    table.add_column(title, ratio=1, no_wrap=True)
    table.add_column("TASKS", justify="right")
    if task_list.grouping == "project":
        table.add_column("DONE", justify="right")

    start, end = visible_window(task_list.cursor, len(task_list.groups), list_rows(state))
    for index in range(start, end):
        group = task_list.groups[index]
        row = [_group_label(group), str(group.count)]
        if task_list.grouping == "project":
            row.append("" if group.percentage is None else f"{group.percentage}%")
        style = CURSOR_STYLE if index == task_list.cursor else ""
        table.add_row(*row, style=style)
    return table


def render_task_detail(task: Task | None) -> RenderableType:
    if task is None:
        return Panel(Text("No task selected", style=DARK_GRAY), box=box.ROUNDED)
    table = Table.grid(padding=(0, 1))
    table.add_column(style=HEADER_STYLE, no_wrap=True)
    table.add_column()
    rows = [
        ("ID", str(task.id) if task.id else ""),
        ("UUID", task.uuid),
        ("Status", task.status),
        ("Project", task.project),
        ("Priority", task.priority),
        ("Tags", " ".join(f"+{t}" for t in task.tags)),
        ("Urgency", f"{task.urgency:.2f}"),
    ]
    rows.extend(
        (name.capitalize(), fmt_datetime(getattr(task, name))) for name in DATE_PROPERTIES
    )
    rows.extend((name, value) for name, value in sorted(task.udas.items()))
    for name, value in rows:
        if value:
            table.add_row(name, value)
    body = [Text(task.description, style="bold"), Text(""), table]
    if task.annotations:
        body.append(Text(""))
        body.append(Text("Annotations", style=HEADER_STYLE))
        for annotation in task.annotations:
            stamp = fmt_datetime(annotation.entry)
            body.append(Text(f"  {stamp}  {annotation.description}"))
    return Panel(Group(*body), box=box.ROUNDED, title="Task")


def render_input(state: AppState) -> Text:
    buffer = state.current_buffer()
    if buffer is None:
        return Text("")
    text = Text(INPUT_PROMPTS[state.mode], style=HEADER_STYLE)
    value = buffer.value
    text.append(value[: buffer.cursor])
    text.append(value[buffer.cursor : buffer.cursor + 1] or " ", style="reverse")
    text.append(value[buffer.cursor + 1 :])
    hint = "  (Tab to complete, Enter to apply, Esc to cancel)"
    if state.mode == AppMode.ANNOTATE_INPUT:
        hint = "  (Enter to apply, Esc to cancel)"
    text.append(hint, style=DARK_GRAY)
    return text


def render_calendar(overlay: CalendarOverlay) -> RenderableType:
    picker = overlay.picker
    selected = picker.selected
    grid = Table(box=None, show_edge=False, pad_edge=False)
    for name in ("Mo", "Tu", "We", "Th", "Fr", "Sa", "Su"):
        grid.add_column(name, justify="right")
    today = date.today()
    for week in picker.month_rows():
        cells = []
        for day in week:
            if day == 0:
                cells.append(Text(""))
                continue
            style = ""
            if day == selected.day:
                style = "reverse"
            elif (selected.year, selected.month, day) == (today.year, today.month, today.day):
                style = f"bold {GOLDENROD}"
            cells.append(Text(f"{day:2d}", style=style))
        grid.add_row(*cells)
    parts: list[RenderableType] = [
        Text(selected.strftime("%B %Y"), style=HEADER_STYLE),
        grid,
    ]
    if picker.editing:
        buffer = picker.edit_buffer
        parts.append(Text(f"Date: {buffer.value}", style=LEMON_CHIFFON))
        parts.append(Text("enter apply · esc back", style=DARK_GRAY))
    else:
        parts.append(Text("h/l day · j/k week · b/n month · t today · e type", style=DARK_GRAY))
    title = f"{overlay.field}:" if overlay.field else "date"
    return Panel(Group(*parts), box=box.ROUNDED, title=title, expand=False)


def render_time_picker(overlay: TimePickerOverlay) -> RenderableType:
    picker = overlay.picker
    text = Text()
    text.append(f"{picker.hour:02d}", style="reverse" if picker.hour_focused else "")
    text.append(":")
    text.append(f"{picker.minute:02d}", style="" if picker.hour_focused else "reverse")
    hint = Text("j/k change · h/l field · n now", style=DARK_GRAY)
    return Panel(Group(text, hint), box=box.ROUNDED, title="time", expand=False)


def render_list_picker(overlay: ListPickerOverlay) -> RenderableType:
    picker = overlay.picker
    if not picker.has_items:
        body: RenderableType = Text("no matches", style=DARK_GRAY)
    else:
        lines = Text()
        for offset, item in enumerate(picker.visible()):
            index = picker.scroll + offset
            style = "reverse" if index == picker.index else ""
            lines.append(f"{item}\n", style=style)
        lines.rstrip()
        body = lines
    title = picker.title
    if overlay.prefix:
        title = f"{title} ({overlay.prefix})"
    return Panel(body, box=box.ROUNDED, title=title, expand=False)


def render_overlay(state: AppState) -> RenderableType | None:
    match state.overlay:
        case CalendarOverlay() as overlay:
            return render_calendar(overlay)
        case TimePickerOverlay() as overlay:
            return render_time_picker(overlay)
        case ListPickerOverlay() as overlay:
            return render_list_picker(overlay)
    return None


HELP_ACTIONS = (
    ("up", "Move up"),
    ("down", "Move down"),
    ("page_up", "Page up"),
    ("page_down", "Page down"),
    ("first", "First task"),
    ("last", "Last task"),
    ("next_section", "Next tab"),
    ("prev_section", "Previous tab"),
    ("filter", "Filter"),
    ("refresh", "Refresh"),
    ("done", "Mark done"),
    ("start_stop", "Start / stop"),
    ("delete", "Delete"),
    ("modify", "Modify"),
    ("annotate", "Annotate"),
    ("new", "New task"),
    ("edit", "Edit in $EDITOR"),
    ("undo", "Undo"),
    ("export_markdown", "Copy as markdown"),
    ("help", "Help"),
    ("quit", "Quit"),
)


def help_lines(state: AppState) -> list[tuple[str, str]]:
    keys = state.keybindings
    lines = [(keys.get(action, ""), label) for action, label in HELP_ACTIONS]
    lines.extend(
        [
            ("space", "Select / unselect task"),
            ("enter", "Open group, toggle sidebar or details"),
            ("escape", "Close details, clear selection, leave group"),
            ("1-9", "Jump to tab"),
            ("tab", "Complete date, time, project or tag in inputs"),
        ]
    )
    for key, command in state.config.tui.custom_commands.items():
        lines.append((key, command.description or command.name))
    return lines


def render_help(state: AppState) -> RenderableType:
    table = Table.grid(padding=(0, 2))
    table.add_column(style=f"bold {GOLDENROD}", no_wrap=True)
    table.add_column()
    for key, label in help_lines(state)[state.help_offset :]:
        table.add_row(key, label)
    return Panel(table, box=box.ROUNDED, title="Keys", subtitle="esc to close")


def render_footer(state: AppState) -> Text:
    if state.mode in INPUT_PROMPTS:
        return render_input(state)
    if state.mode == AppMode.CONFIRM:
        count = len(state.pending_tasks)
        noun = "task" if count == 1 else "tasks"
        return Text(f"{state.confirm_action} {count} {noun}? (y/n)", style=ERROR_STYLE)
    if state.error_message:
        return Text(state.error_message, style=ERROR_STYLE)
    text = Text()
    if state.status_message:
        text.append(state.status_message, style=STATUS_STYLE)
        text.append("  ")
    task_list = state.task_list
    if task_list.grouped:
        text.append(f"{len(task_list.groups)} groups", style=DARK_GRAY)
    else:
        text.append(f"{len(task_list.visible)} tasks", style=DARK_GRAY)
        if task_list.selected:
            text.append(f" · {len(task_list.selected)} selected", style=DARK_GRAY)
    if task_list.selected_group is not None:
        text.append(f" · {task_list.selected_group}", style=DARK_GRAY)
    if state.active_filter:
        text.append(f" · {truncate_string(state.active_filter, 40)}", style=DARK_GRAY)
    text.append("  ? help", style=DARK_GRAY)
    return text


def render_main(state: AppState) -> RenderableType:
    """The list area: groups, tasks, the detail page or the help screen."""
    if state.mode == AppMode.HELP:
        return render_help(state)
    task_list = state.task_list
    if state.layout == LayoutMode.SMALL_TASK_DETAIL and not task_list.grouped:
        body: RenderableType = render_task_detail(task_list.current_task)
    elif task_list.grouped:
        body = render_groups(state)
    else:
        body = render_task_table(state)
    overlay = render_overlay(state)
    if overlay is not None:
        return Group(body, overlay)
    return body


def render_sidebar(state: AppState) -> RenderableType | None:
    if state.layout != LayoutMode.LIST_WITH_SIDEBAR or state.task_list.grouped:
        return None
    return render_task_detail(state.task_list.current_task)


def render_state(state: AppState) -> dict[str, RenderableType | None]:
    """Project a state onto the screen regions; has no side effects."""
    return {
        "tabs": render_tabs(state),
        "main": render_main(state),
        "sidebar": render_sidebar(state),
        "footer": render_footer(state),
    }


def normalize_key(event: events.Key) -> str:
    """Printable keys become their character ("G", "/"); space stays "space"."""
    character = event.character
    if character is not None and event.is_printable and len(character) == 1:
        return "space" if character == " " else character
    return event.key


class KeyCanvas(Static, can_focus=True):
    """Holds focus so that every key, tab included, reaches the controller."""

    def on_key(self, event: events.Key) -> None:
        event.prevent_default()
        event.stop()
        self.app.post_key(normalize_key(event))


class WuiApp(App, inherit_bindings=False):
    """A terminal front end for taskwarrior."""

    ENABLE_COMMAND_PALETTE = False

    CSS = """
    #tabs { height: 1; }
    #panes { height: 1fr; }
    #main { width: 1fr; }
    #sidebar { display: none; }
    #sidebar.visible { display: block; }
    #footer { height: 2; }
    """

    def __init__(self, state: AppState, backend: TaskBackend) -> None:
        super().__init__()
        self.initial_state = state
        self.backend = backend
        self.controller: Controller | None = None

    def compose(self) -> ComposeResult:
        yield Static("", id="tabs")
        with Horizontal(id="panes"):
            yield KeyCanvas("", id="main")
            yield Static("", id="sidebar")
        yield Static("", id="footer")

    def on_mount(self) -> None:
        self.title = "wui"
        self.controller = Controller(
            self.initial_state,
            self.backend,
            on_state=self.show,
            on_quit=self.exit,
            suspend=self._suspend,
            clipboard=self.copy_to_clipboard,
        )
        self.query_one("#main", KeyCanvas).focus()
        self.controller.post(Resize(self.size.width, self.size.height))
        self.run_worker(self.controller.run(), exclusive=True)

    def _suspend(self):
        if self.is_headless:
            return contextlib.nullcontext()
        return self.suspend()

    def post_key(self, key: str) -> None:
        if self.controller is not None:
            self.controller.post(KeyPress(key))

    def on_resize(self, event: events.Resize) -> None:
        if self.controller is not None:
            self.controller.post(Resize(event.size.width, event.size.height))

    def show(self, state: AppState) -> None:
        regions = render_state(state)
        self.query_one("#tabs", Static).update(regions["tabs"])
        self.query_one("#main", KeyCanvas).update(regions["main"])
        self.query_one("#footer", Static).update(regions["footer"])
        sidebar = self.query_one("#sidebar", Static)
        if regions["sidebar"] is None:
            sidebar.remove_class("visible")
            sidebar.update("")
        else:
            sidebar.styles.width = f"{state.config.tui.sidebar_width}%"
            sidebar.add_class("visible")
            sidebar.update(regions["sidebar"])
        problems = state.invariant_violations()
        if problems:
            log_msg(f"inconsistent state: {problems}")
