from __future__ import annotations

import asyncio
import contextlib
import shlex
import subprocess
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from .model import BackendError, TaskBackend
from .item import Task
from .shared import (
    TemplateError,
    expand_command_template,
    log_msg,
    split_command_line,
)
from .state import (
    AutocompleteDataLoaded,
    Event,
    ProjectSummaryLoaded,
    StatusMessage,
    SyncCompleted,
    TaskModified,
    TasksLoaded,
)
from .tasklist import extract_unique_projects, extract_unique_tags

AUTOCOMPLETE_FILTER = "status:pending"

# ─── Commands ─────────────────────────────────────────────────


@dataclass(frozen=True)
class LoadTasks:
    filter: str
    is_search: bool = False
    generation: int = 0


@dataclass(frozen=True)
class LoadProjectSummary:
    generation: int = 0


@dataclass(frozen=True)
class LoadAutocompleteData:
    pass


@dataclass(frozen=True)
class BatchMutation:
    action: str
    tasks: tuple[Task, ...]
    argument: str = ""


@dataclass(frozen=True)
class CreateTask:
    description: str


@dataclass(frozen=True)
class Undo:
    pass


@dataclass(frozen=True)
class EditTask:
    uuid: str


@dataclass(frozen=True)
class RunCustomCommand:
    name: str
    template: str
    task: Optional[Task]


@dataclass(frozen=True)
class ExportMarkdown:
    tasks: tuple[Task, ...]


@dataclass(frozen=True)
class SyncCalendar:
    command: str


@dataclass(frozen=True)
class Quit:
    pass


Command = (
    LoadTasks
    | LoadProjectSummary
    | LoadAutocompleteData
    | BatchMutation
    | CreateTask
    | Undo
    | EditTask
    | RunCustomCommand
    | ExportMarkdown
    | SyncCalendar
    | Quit
)


# ─── Work units ───────────────────────────────────────────────


def effective_filter(filter_text: str, is_search: bool) -> str:
    """The Search tab looks at every status unless the filter names one."""
    if is_search and "status:" not in filter_text:
        return f"status.any: {filter_text}"
    return filter_text


def load_tasks(backend: TaskBackend, command: LoadTasks) -> TasksLoaded:
    if not command.filter.strip():
        # nothing is searched until a filter is entered
        return TasksLoaded(tasks=(), generation=command.generation)
    try:
        tasks = backend.export(effective_filter(command.filter, command.is_search))
    except BackendError as e:
        return TasksLoaded(error=str(e), generation=command.generation)
    return TasksLoaded(tasks=tuple(tasks), generation=command.generation)


def load_autocomplete_data(backend: TaskBackend) -> AutocompleteDataLoaded:
    try:
        tasks = backend.export(AUTOCOMPLETE_FILTER)
    except BackendError as e:
        return AutocompleteDataLoaded(error=str(e))
    return AutocompleteDataLoaded(
        projects=extract_unique_projects(tasks), tags=extract_unique_tags(tasks)
    )


def _apply_one(backend: TaskBackend, action: str, task: Task, argument: str) -> None:
    match action:
        case "done":
            backend.done(task.uuid)
        case "delete":
            backend.delete(task.uuid)
        case "start_stop":
            if task.is_active:
                backend.stop(task.uuid)
            else:
                backend.start(task.uuid)
        case "modify":
            backend.modify(task.uuid, argument)
        case "annotate":
            backend.annotate(task.uuid, argument)
        case _:
            raise ValueError(f"unknown batch action {action!r}")


def run_batch(
    backend: TaskBackend, action: str, tasks: Iterable[Task], argument: str = ""
) -> Optional[str]:
    """
    Apply *action* to every task in order. A failure does not stop the
    remaining tasks; the first error message is returned, else None.
    """
    first_error: Optional[str] = None
    for task in tasks:
        try:
            _apply_one(backend, action, task, argument)
        except BackendError as e:
            log_msg(f"{action} failed for {task.uuid}: {e}")
            if first_error is None:
                first_error = str(e)
    return first_error


def launch_custom_command(command: RunCustomCommand) -> StatusMessage:
    try:
        expanded = expand_command_template(command.template, command.task)
        parts = split_command_line(expanded)
    except TemplateError as e:
        return StatusMessage(f"Command expansion failed: {e}", is_error=True)
    if not parts:
        return StatusMessage("Empty command after expansion", is_error=True)
    try:
        subprocess.Popen(
            parts,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        return StatusMessage(f"Command execution failed: {e}", is_error=True)
    return StatusMessage(f"Executed: {command.name}")


def run_sync_command(command: str) -> SyncCompleted:
    try:
        parts = shlex.split(command)
    except ValueError as e:
        return SyncCompleted(error=str(e))
    if not parts:
        return SyncCompleted(error="calendar sync command is not configured")
    try:
        result = subprocess.run(parts, capture_output=True, text=True, check=False)
    except OSError as e:
        return SyncCompleted(error=str(e))
    if result.returncode != 0:
        return SyncCompleted(error=result.stderr.strip() or f"exit {result.returncode}")
    return SyncCompleted(output=result.stdout.strip())


def failure_event(command: Command, message: str) -> Optional[Event]:
    """The result event reporting that *command* could not complete."""
    match command:
        case LoadTasks(generation=generation):
            return TasksLoaded(error=message, generation=generation)
        case LoadProjectSummary(generation=generation):
            return ProjectSummaryLoaded(error=message, generation=generation)
        case LoadAutocompleteData():
            return AutocompleteDataLoaded(error=message)
        case BatchMutation() | CreateTask() | Undo() | EditTask():
            return TaskModified(error=message)
        case SyncCalendar():
            return SyncCompleted(error=message)
        case Quit():
            return None
    return StatusMessage(message, is_error=True)


# ─── Dispatcher ───────────────────────────────────────────────


class Dispatcher:
    """
    Runs each command as its own asyncio task and posts exactly one result
    event per command (Quit posts none). Blocking backend work goes to a
    worker thread.
    """

    def __init__(
        self,
        backend: TaskBackend,
        post: Callable[[Event], None],
        suspend: Callable[[], contextlib.AbstractContextManager] | None = None,
        clipboard: Callable[[str], None] | None = None,
        on_quit: Callable[[], None] | None = None,
    ):
        self.backend = backend
        self.post = post
        self.suspend = suspend or contextlib.nullcontext
        self.clipboard = clipboard
        self.on_quit = on_quit
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, commands: Iterable[Command]) -> list[asyncio.Task]:
        started = []
        for command in commands:
            task = asyncio.create_task(self.run(command))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            started.append(task)
        return started

    async def wait(self) -> None:
        """Wait for every command dispatched so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    async def run(self, command: Command) -> None:
        try:
            event = await self.execute(command)
        except Exception as e:
            log_msg(f"{type(command).__name__} failed: {e!r}")
            event = failure_event(command, f"{type(e).__name__}: {e}")
        if event is not None:
            self.post(event)

    async def execute(self, command: Command) -> Optional[Event]:
        backend = self.backend
        match command:
            case LoadTasks():
                return await asyncio.to_thread(load_tasks, backend, command)
            case LoadProjectSummary(generation=generation):
                try:
                    summaries = await asyncio.to_thread(backend.project_summary)
                except BackendError as e:
                    return ProjectSummaryLoaded(error=str(e), generation=generation)
                return ProjectSummaryLoaded(
                    summaries=tuple(summaries), generation=generation
                )
            case LoadAutocompleteData():
                return await asyncio.to_thread(load_autocomplete_data, backend)
            case BatchMutation(action=action, tasks=tasks, argument=argument):
                error = await asyncio.to_thread(run_batch, backend, action, tasks, argument)
                return TaskModified(error=error)
            case CreateTask(description=description):
                try:
                    uuid = await asyncio.to_thread(backend.add, description)
                except BackendError as e:
                    return TaskModified(error=str(e))
                log_msg(f"created task {uuid}")
                return TaskModified(message="Task created successfully")
            case Undo():
                try:
                    await asyncio.to_thread(backend.undo)
                except BackendError as e:
                    return TaskModified(error=str(e))
                return TaskModified(message="Undo successful")
            case EditTask(uuid=uuid):
                # the editor owns the terminal until it exits
                try:
                    with self.suspend():
                        backend.edit(uuid)
                except BackendError as e:
                    return TaskModified(error=str(e))
                return TaskModified()
            case RunCustomCommand():
                return await asyncio.to_thread(launch_custom_command, command)
            case ExportMarkdown(tasks=tasks):
                return self._export_markdown(tasks)
            case SyncCalendar(command=sync_command):
                return await asyncio.to_thread(run_sync_command, sync_command)
            case Quit():
                if self.on_quit is not None:
                    self.on_quit()
                return None
        raise TypeError(f"unknown command {command!r}")

    def _export_markdown(self, tasks: Iterable[Task]) -> StatusMessage:
        markdown = "\n".join(task.to_markdown() for task in tasks)
        if self.clipboard is None:
            return StatusMessage(f"Failed to copy to clipboard: {markdown}", is_error=True)
        try:
            self.clipboard(markdown)
        except Exception as e:  # clipboard backends raise assorted errors
            log_msg(f"clipboard copy failed: {e}")
            return StatusMessage(f"Failed to copy to clipboard: {markdown}", is_error=True)
        return StatusMessage("Task exported to clipboard as markdown ✓")
