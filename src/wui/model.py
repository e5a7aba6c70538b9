import os
import re
import json
import shlex
import subprocess
from typing import Optional, Protocol

from .item import Task, ProjectSummary
from .shared import log_msg

percent_regex = re.compile(r"\s(\d+)%")
created_regex = re.compile(r"Created task (\d+)")


class BackendError(RuntimeError):
    """A taskwarrior command failed; the message carries its stderr."""


class TaskBackend(Protocol):
    def export(self, filter_text: str) -> list[Task]: ...

    def done(self, uuid: str) -> None: ...

    def delete(self, uuid: str) -> None: ...

    def start(self, uuid: str) -> None: ...

    def stop(self, uuid: str) -> None: ...

    def undo(self) -> None: ...

    def modify(self, uuid: str, modifications: str) -> None: ...

    def annotate(self, uuid: str, text: str) -> None: ...

    def add(self, description: str) -> str: ...

    def edit(self, uuid: str) -> None: ...

    def project_summary(self) -> list[ProjectSummary]: ...


def parse_export(output: str) -> list[Task]:
    """Parse the JSON array written by `task export`."""
    if not output.strip():
        return []
    try:
        raw = json.loads(output)
    except json.JSONDecodeError as e:
        log_msg(f"could not parse export output: {output[:500]!r}")
        raise BackendError(f"failed to parse task JSON: {e}") from e
    return [Task.from_export(entry) for entry in raw]


def parse_summary_output(output: str) -> list[ProjectSummary]:
    """
    Parse the table printed by `task summary`.

    Subprojects are indented two spaces per level below their parent, e.g.

        Project   Remaining Avg age Complete 0%        100%
        --------- --------- ------- -------- ------------
        Home              5      2w      40% ======
          Garden          2      1w      50% ========

    yields "Home" (40) and "Home.Garden" (50). The "(none)" row is skipped.
    """
    summaries: list[ProjectSummary] = []
    parents: list[str] = []
    header_found = False

    for line in output.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if "Project" in line and "Complete" in line:
            header_found = True
            continue
        if not header_found:
            continue
        if stripped.startswith(("---", "===")):
            continue
        if stripped.endswith(("projects", "project")):
            continue

        leading = len(line) - len(line.lstrip(" "))
        level = (leading + 1) // 2
        segment = stripped.split()[0]
        if segment == "(none)":
            continue

        match = percent_regex.search(line)
        percentage = int(match.group(1)) if match else 0

        parents = parents[:level]
        name = ".".join(parents + [segment])
        summaries.append(ProjectSummary(name=name, percentage=percentage))
        parents.append(segment)

    return summaries


class TaskwarriorClient:
    """Runs the taskwarrior binary for every query and mutation."""

    def __init__(self, task_bin: str = "task", taskrc_path: str = ""):
        if not task_bin:
            raise ValueError("task binary path cannot be empty")
        self.task_bin = task_bin
        self.taskrc_path = taskrc_path

    def _env(self) -> Optional[dict[str, str]]:
        if not self.taskrc_path:
            return None
        return {**os.environ, "TASKRC": os.path.expanduser(self.taskrc_path)}

    def run(self, *args: str) -> str:
        cmd = [self.task_bin, *args]
        log_msg(f"running {shlex.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                errors="replace",
                env=self._env(),
                check=False,
            )
        except OSError as e:
            log_msg(f"could not launch {self.task_bin}: {e}")
            raise BackendError(f"could not run {self.task_bin}: {e}") from e

        if result.returncode != 0:
            stderr = result.stderr.strip()
            log_msg(f"{shlex.join(cmd)} failed ({result.returncode}): {stderr}")
            raise BackendError(stderr or f"{self.task_bin} exited {result.returncode}")
        return result.stdout

    def export(self, filter_text: str) -> list[Task]:
        output = self.run(*filter_text.split(), "export")
        tasks = parse_export(output)
        log_msg(f"exported {len(tasks)} tasks for {filter_text!r}")
        return tasks

    def done(self, uuid: str) -> None:
        self.run(uuid, "done")

    def delete(self, uuid: str) -> None:
        self.run("rc.confirmation=off", uuid, "delete")

    def start(self, uuid: str) -> None:
        self.run(uuid, "start")

    def stop(self, uuid: str) -> None:
        self.run(uuid, "stop")

    def undo(self) -> None:
        self.run("rc.confirmation=off", "undo")

    def modify(self, uuid: str, modifications: str) -> None:
        self.run(uuid, "modify", *modifications.split())

    def annotate(self, uuid: str, text: str) -> None:
        self.run(uuid, "annotate", text)

    def add(self, description: str) -> str:
        """Add a task and return its uuid, or "" when taskwarrior reports no id."""
        output = self.run("add", *description.split())
        match = created_regex.search(output)
        if match is None:
            log_msg(f"no task id in add output: {output.strip()!r}")
            return ""
        try:
            return self.run("_get", f"{match.group(1)}.uuid").strip()
        except BackendError as e:
            # the task exists; only its uuid lookup failed
            log_msg(f"uuid lookup for task {match.group(1)} failed: {e}")
            return ""

    def edit(self, uuid: str) -> None:
        # inherits the terminal; the caller suspends the UI around this
        cmd = [self.task_bin, uuid, "edit"]
        log_msg(f"running {shlex.join(cmd)}")
        try:
            result = subprocess.run(cmd, env=self._env(), check=False)
        except OSError as e:
            raise BackendError(f"could not run {self.task_bin}: {e}") from e
        if result.returncode != 0:
            raise BackendError(f"failed to edit task {uuid}")

    def project_summary(self) -> list[ProjectSummary]:
        return parse_summary_output(self.run("summary"))
