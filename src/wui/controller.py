from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Callable, Optional

from .autocomplete import CompletionContext, CompletionKind, detect_completion
from .commands import (
    BatchMutation,
    Command,
    CreateTask,
    Dispatcher,
    EditTask,
    ExportMarkdown,
    LoadAutocompleteData,
    LoadProjectSummary,
    LoadTasks,
    Quit,
    RunCustomCommand,
    SyncCalendar,
    Undo,
)
from .item import Task
from .model import TaskBackend
from .pickers import Calendar, ListPicker, TextBuffer, TimePicker
from .shared import log_msg
from .state import (
    COMPLETION_MODES,
    INPUT_MODES,
    AppMode,
    AppState,
    AutocompleteDataLoaded,
    CalendarOverlay,
    Event,
    KeyPress,
    LayoutMode,
    ListPickerOverlay,
    ProjectSummaryLoaded,
    Refresh,
    Resize,
    StatusMessage,
    SyncCompleted,
    TaskModified,
    TasksLoaded,
    TimePickerOverlay,
    derive_layout,
)

Transition = tuple[AppState, list[Command]]

NEXT_SECTION_KEYS = ("tab", "l", "right")
PREV_SECTION_KEYS = ("shift+tab", "h", "left")
# rows taken by the tab bar, footer and borders
CHROME_ROWS = 7


# ─── Loading ─────────────────────────────────────────────────


def reload(state: AppState) -> Transition:
    generation = state.generation + 1
    state = replace(state, generation=generation, loading=True)
    return state, [
        LoadTasks(state.active_filter, state.section.is_search, generation)
    ]


def startup(state: AppState) -> Transition:
    """The commands issued once when the application starts."""
    state, commands = reload(state)
    return state, commands + [LoadAutocompleteData()]


def is_stale(state: AppState, event: Event) -> bool:
    """Results of a superseded load carry an older generation."""
    if isinstance(event, (TasksLoaded, ProjectSummaryLoaded)):
        return event.generation != state.generation
    return False


def on_tasks_loaded(state: AppState, event: TasksLoaded) -> Transition:
    triggered_by_filter = state.filter_submitted
    state = replace(state, loading=False, filter_submitted=False)
    if event.error is not None:
        state = replace(state, error_message=f"Failed to load tasks: {event.error}")
        if triggered_by_filter and state.mode == AppMode.NORMAL and state.active_filter:
            # let the user fix the filter that failed
            state = replace(state, mode=AppMode.FILTER_INPUT)
        return state, []

    task_list = state.task_list.load(event.tasks)
    state = replace(state, task_list=task_list, error_message="")
    if task_list.grouped and task_list.grouping == "project":
        return replace(state, loading=True), [LoadProjectSummary(state.generation)]
    return state, []


def on_summary_loaded(state: AppState, event: ProjectSummaryLoaded) -> Transition:
    state = replace(state, loading=False)
    if event.error is not None:
        return (
            replace(
                state, error_message=f"Failed to load project summary: {event.error}"
            ),
            [],
        )
    return replace(state, task_list=state.task_list.with_summaries(event.summaries)), []


def on_task_modified(state: AppState, event: TaskModified) -> Transition:
    state = replace(state, suspended=False)
    if event.error is not None:
        return (
            replace(
                state,
                loading=False,
                error_message=f"Task operation failed: {event.error}",
            ),
            [],
        )
    state = replace(state, error_message="", status_message=event.message)
    state, commands = reload(state)
    return state, commands + [LoadAutocompleteData()]


def on_autocomplete_loaded(state: AppState, event: AutocompleteDataLoaded) -> Transition:
    if event.error is not None:
        # suggestions are best effort
        return replace(state, projects=(), tags=()), []
    return replace(state, projects=event.projects, tags=event.tags), []


def on_sync_completed(state: AppState, event: SyncCompleted) -> Transition:
    quitting = state.syncing_before_quit
    state = replace(state, loading=False, syncing_before_quit=False)
    if event.error is not None:
        # stay open so the error can be read
        return replace(state, error_message=f"Calendar sync failed: {event.error}"), []
    message = "Calendar synced"
    if event.output:
        message = f"{message}: {event.output.splitlines()[-1]}"
    state = replace(state, status_message=message, error_message="")
    return state, [Quit()] if quitting else []


def on_resize(state: AppState, event: Resize) -> Transition:
    layout = derive_layout(event.width, state.layout, state.explicit_layout)
    page_size = max(event.height - CHROME_ROWS, 1)
    return (
        replace(
            state,
            width=event.width,
            height=event.height,
            layout=layout,
            task_list=replace(state.task_list, page_size=page_size),
        ),
        [],
    )


# ─── Overlays ────────────────────────────────────────────────


def open_overlay(state: AppState, context: CompletionContext) -> AppState:
    origin = state.mode
    match context.kind:
        case CompletionKind.PROJECT:
            overlay = ListPickerOverlay(
                picker=ListPicker.create("Projects", state.projects, context.prefix),
                origin=origin,
                insert_pos=context.insert_pos,
                kind=context.kind,
                prefix=context.prefix,
            )
        case CompletionKind.TAG:
            overlay = ListPickerOverlay(
                picker=ListPicker.create("Tags", state.tags, context.prefix),
                origin=origin,
                insert_pos=context.insert_pos,
                kind=context.kind,
                prefix=context.prefix,
            )
        case CompletionKind.TIME:
            overlay = TimePickerOverlay(
                picker=TimePicker.now(), origin=origin, insert_pos=context.insert_pos
            )
        case _:
            overlay = CalendarOverlay(
                picker=Calendar.today(),
                origin=origin,
                insert_pos=context.insert_pos,
                field=context.field,
            )
    return replace(state, overlay=overlay)


def confirm_overlay(state: AppState) -> AppState:
    """Write the picker's selection into the buffer it was opened from."""
    overlay = state.overlay
    if overlay is None:
        return state
    buffer = state.buffer(overlay.origin)
    if isinstance(overlay, ListPickerOverlay):
        if overlay.picker.has_items:
            buffer = buffer.splice(
                overlay.insert_pos, overlay.picker.value(), remove=overlay.prefix
            )
    else:
        buffer = buffer.splice(overlay.insert_pos, overlay.picker.value())
    return replace(state.with_buffer(overlay.origin, buffer), overlay=None)


def handle_overlay_key(state: AppState, key: str) -> Transition:
    overlay = state.overlay
    if not overlay.picker.captures_confirm:
        if key == "enter":
            return confirm_overlay(state), []
        if key == "escape":
            return replace(state, overlay=None), []
    return replace(state, overlay=replace(overlay, picker=overlay.picker.update(key))), []


# ─── Text input modes ────────────────────────────────────────


def _leave_input(state: AppState, mode: AppMode) -> AppState:
    buffer = state.buffer(mode).cleared()
    return replace(
        state.with_buffer(mode, buffer), mode=AppMode.NORMAL, pending_tasks=()
    )


def submit_input(state: AppState) -> Transition:
    mode = state.mode
    text = state.buffer(mode).value.strip()

    if mode == AppMode.FILTER_INPUT:
        buffer = state.filter_input.remember()
        state = replace(
            state,
            mode=AppMode.NORMAL,
            filter_input=buffer,
            active_filter=text,
            filter_submitted=True,
        )
        if state.section.is_search:
            state = replace(state, search_filter=text)
        return reload(state)

    tasks = state.pending_tasks
    state = _leave_input(state, mode)
    if mode == AppMode.NEW_TASK_INPUT:
        if not text:
            return state, []
        return replace(state, loading=True), [CreateTask(text)]

    action = "modify" if mode == AppMode.MODIFY_INPUT else "annotate"
    if not tasks or not text:
        return state, []
    state = replace(
        state, task_list=state.task_list.clear_selection(), loading=True
    )
    return state, [BatchMutation(action, tasks, text)]


def handle_input_key(state: AppState, key: str) -> Transition:
    mode = state.mode
    buffer = state.buffer(mode)

    if key == "escape":
        return _leave_input(state, mode), []
    if key == "enter":
        return submit_input(state)
    if key == "tab" and mode in COMPLETION_MODES:
        context = detect_completion(buffer.value, buffer.cursor)
        if context is not None:
            return open_overlay(state, context), []
    if mode == AppMode.FILTER_INPUT:
        if key == "up":
            return state.with_buffer(mode, buffer.history_prev()), []
        if key == "down":
            return state.with_buffer(mode, buffer.history_next()), []

    updated = buffer.update(key)
    if updated.value != buffer.value:
        updated = replace(updated, history_index=-1)
    return state.with_buffer(mode, updated), []


# ─── Normal mode ─────────────────────────────────────────────


def switch_section(state: AppState, index: int) -> Transition:
    if not 0 <= index < len(state.sections):
        return state, []
    section = state.sections[index]
    state = replace(
        state,
        section_index=index,
        active_filter=state.search_filter if section.is_search else section.filter,
        task_list=state.task_list.for_section(
            section.grouping, section.sort, section.reverse
        ),
        error_message="",
        status_message="",
    )
    return reload(state)


def handle_escape(state: AppState) -> Transition:
    task_list = state.task_list
    if state.layout == LayoutMode.SMALL_TASK_DETAIL:
        return replace(state, layout=LayoutMode.SMALL), []
    if task_list.selected:
        return replace(state, task_list=task_list.clear_selection()), []
    if task_list.grouping and task_list.selected_group is not None:
        return replace(state, task_list=task_list.back_to_groups()), []
    return state, []


def handle_enter(state: AppState) -> Transition:
    task_list = state.task_list
    if task_list.grouped:
        return replace(state, task_list=task_list.drill_down()), []
    if state.layout == LayoutMode.SMALL:
        return replace(state, layout=LayoutMode.SMALL_TASK_DETAIL), []
    if state.layout == LayoutMode.SMALL_TASK_DETAIL:
        return state, []
    layout = (
        LayoutMode.LIST
        if state.layout == LayoutMode.LIST_WITH_SIDEBAR
        else LayoutMode.LIST_WITH_SIDEBAR
    )
    return replace(state, layout=layout, explicit_layout=layout), []


def _batch(
    state: AppState, action: str, tasks: tuple[Task, ...] = ()
) -> Transition:
    tasks = tasks or tuple(state.task_list.selected_tasks())
    if not tasks:
        return state, []
    state = replace(state, task_list=state.task_list.clear_selection(), loading=True)
    return state, [BatchMutation(action, tasks)]


def _open_input(
    state: AppState, mode: AppMode, value: str = "", tasks: tuple[Task, ...] = ()
) -> AppState:
    buffer = TextBuffer.of(value, history=state.buffer(mode).history)
    return replace(state.with_buffer(mode, buffer), mode=mode, pending_tasks=tasks)


def quit_application(state: AppState) -> Transition:
    sync = state.config.calendar_sync
    if sync.enabled and sync.auto_sync_on_quit and not state.syncing_before_quit:
        state = replace(
            state,
            syncing_before_quit=True,
            loading=True,
            status_message="Syncing calendar before quit...",
        )
        return state, [SyncCalendar(sync.command)]
    return state, [Quit()]


def handle_normal_key(state: AppState, key: str) -> Transition:
    task_list = state.task_list
    grouped = task_list.grouped

    if state.key_is(key, "quit"):
        return quit_application(state)
    if state.key_is(key, "help"):
        return replace(state, mode=AppMode.HELP, help_offset=0), []
    if key == "space":
        return replace(state, task_list=task_list.toggle_selection()), []
    if key == "escape":
        return handle_escape(state)
    if state.key_is(key, "filter"):
        value = f"{state.active_filter} " if state.active_filter else ""
        return _open_input(state, AppMode.FILTER_INPUT, value), []
    if state.key_is(key, "refresh"):
        return reload(state)
    if key == "enter":
        return handle_enter(state)

    if not grouped:
        if state.key_is(key, "done"):
            return _batch(state, "done")
        if state.key_is(key, "start_stop"):
            return _batch(state, "start_stop")
        if state.key_is(key, "delete"):
            tasks = tuple(task_list.selected_tasks())
            if not tasks:
                return state, []
            return (
                replace(
                    state,
                    mode=AppMode.CONFIRM,
                    confirm_action="delete",
                    pending_tasks=tasks,
                ),
                [],
            )
    if state.key_is(key, "undo"):
        return replace(state, loading=True), [Undo()]
    if state.key_is(key, "new"):
        return _open_input(state, AppMode.NEW_TASK_INPUT), []
    if not grouped:
        tasks = tuple(task_list.selected_tasks())
        if state.key_is(key, "modify") and tasks:
            return _open_input(state, AppMode.MODIFY_INPUT, tasks=tasks), []
        if state.key_is(key, "export_markdown"):
            if not tasks:
                return state, []
            return (
                replace(state, task_list=task_list.clear_selection()),
                [ExportMarkdown(tasks)],
            )
        if state.key_is(key, "annotate") and tasks:
            return _open_input(state, AppMode.ANNOTATE_INPUT, tasks=tasks), []
        if state.key_is(key, "edit"):
            task = task_list.current_task
            if task is None or state.suspended:
                return state, []
            return replace(state, suspended=True), [EditTask(task.uuid)]

    count = len(state.sections)
    if key in NEXT_SECTION_KEYS or state.key_is(key, "next_section"):
        return switch_section(state, (state.section_index + 1) % count)
    if key in PREV_SECTION_KEYS or state.key_is(key, "prev_section"):
        return switch_section(state, (state.section_index - 1) % count)
    if key.isdigit() and key != "0":
        return switch_section(state, int(key) - 1)

    custom = state.config.tui.custom_commands.get(key)
    if custom is not None:
        if grouped:
            return state, []
        task = task_list.current_task
        if task is None:
            return replace(state, status_message="No task selected"), []
        return state, [RunCustomCommand(custom.name, custom.command, task)]

    if key == "up" or state.key_is(key, "up"):
        return replace(state, task_list=task_list.move(-1)), []
    if key == "down" or state.key_is(key, "down"):
        return replace(state, task_list=task_list.move(1)), []
    if key == "home" or state.key_is(key, "first"):
        return replace(state, task_list=task_list.first()), []
    if key == "end" or state.key_is(key, "last"):
        return replace(state, task_list=task_list.last()), []
    if key == "pageup" or state.key_is(key, "page_up"):
        return replace(state, task_list=task_list.page(-1)), []
    if key == "pagedown" or state.key_is(key, "page_down"):
        return replace(state, task_list=task_list.page(1)), []
    return state, []


def handle_help_key(state: AppState, key: str) -> Transition:
    if key in ("escape", "q", "?") or state.key_is(key, "help"):
        return replace(state, mode=AppMode.NORMAL), []
    if key in ("down", "j"):
        return replace(state, help_offset=state.help_offset + 1), []
    if key in ("up", "k"):
        return replace(state, help_offset=max(state.help_offset - 1, 0)), []
    return state, []


def handle_confirm_key(state: AppState, key: str) -> Transition:
    if key in ("escape", "n", "N"):
        return (
            replace(state, mode=AppMode.NORMAL, confirm_action=None, pending_tasks=()),
            [],
        )
    if key in ("y", "Y"):
        action, tasks = state.confirm_action, state.pending_tasks
        state = replace(
            state, mode=AppMode.NORMAL, confirm_action=None, pending_tasks=()
        )
        if action is None or not tasks:
            return state, []
        return _batch(state, action, tasks)
    return state, []


def handle_key(state: AppState, key: str) -> Transition:
    if key == "ctrl+c":
        return state, [Quit()]
    if state.overlay is not None:
        return handle_overlay_key(state, key)
    if state.mode in INPUT_MODES:
        return handle_input_key(state, key)
    if state.mode == AppMode.HELP:
        return handle_help_key(state, key)
    if state.mode == AppMode.CONFIRM:
        return handle_confirm_key(state, key)
    return handle_normal_key(state, key)


def transition(state: AppState, event: Event) -> Transition:
    """
    Apply one event to the state. Returns the new state and the commands to
    run; nothing is executed here.
    """
    if is_stale(state, event):
        return state, []
    match event:
        case KeyPress(key=key):
            return handle_key(state, key)
        case Resize():
            return on_resize(state, event)
        case TasksLoaded():
            return on_tasks_loaded(state, event)
        case ProjectSummaryLoaded():
            return on_summary_loaded(state, event)
        case TaskModified():
            return on_task_modified(state, event)
        case AutocompleteDataLoaded():
            return on_autocomplete_loaded(state, event)
        case SyncCompleted():
            return on_sync_completed(state, event)
        case StatusMessage(message=message, is_error=True):
            return replace(state, error_message=message), []
        case StatusMessage(message=message):
            return replace(state, status_message=message, error_message=""), []
        case Refresh():
            return reload(state)
    return state, []


# ─── Mailbox ─────────────────────────────────────────────────


class Controller:
    """
    The single consumer of the event queue. Each event goes through
    `transition`; the resulting commands are handed to the dispatcher and the
    new state to `on_state`.
    """

    def __init__(
        self,
        state: AppState,
        backend: TaskBackend,
        on_state: Optional[Callable[[AppState], None]] = None,
        on_quit: Optional[Callable[[], None]] = None,
        suspend=None,
        clipboard: Optional[Callable[[str], None]] = None,
    ):
        self.state = state
        self.on_state = on_state
        self._on_quit = on_quit
        self.queue: asyncio.Queue[Event] = asyncio.Queue()
        self.running = False
        self.dispatcher = Dispatcher(
            backend,
            self.post,
            suspend=suspend,
            clipboard=clipboard,
            on_quit=self._quit,
        )

    def post(self, event: Event) -> None:
        self.queue.put_nowait(event)

    def _quit(self) -> None:
        self.running = False
        if self._on_quit is not None:
            self._on_quit()

    def _publish(self, commands: list[Command]) -> None:
        if self.on_state is not None:
            self.on_state(self.state)
        if commands:
            self.dispatcher.dispatch(commands)

    def start(self) -> list[Command]:
        self.state, commands = startup(self.state)
        self._publish(commands)
        return commands

    def apply(self, event: Event) -> list[Command]:
        if is_stale(self.state, event):
            log_msg(
                f"dropping {type(event).__name__} of generation {event.generation}, "
                f"current is {self.state.generation}"
            )
            return []
        self.state, commands = transition(self.state, event)
        self._publish(commands)
        return commands

    async def run(self) -> None:
        self.running = True
        self.start()
        while self.running:
            event = await self.queue.get()
            self.apply(event)
