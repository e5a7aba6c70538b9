import inspect
import textwrap
import shutil
import shlex
import re
import os
from datetime import date, datetime
from pathlib import Path

from wui.wui_env import WuiEnvironment

env = WuiEnvironment()

ELLIPSIS_CHAR = "…"

DATE_FMT = "%Y-%m-%d"
DATETIME_FMT = "%Y-%m-%d %H:%M"

PLACEHOLDER_REGEX = re.compile(r"\{\{\.([^}]*)\}\}")


class TemplateError(ValueError):
    """Raised when a custom command template cannot be expanded."""


def truncate_string(s: str, max_length: int) -> str:
    if max_length <= 0:
        return ""
    if len(s) > max_length:
        return f"{s[: max_length - 1]}{ELLIPSIS_CHAR}"
    return s


def fmt_date(value: date | datetime | None) -> str:
    if value is None:
        return ""
    return value.strftime(DATE_FMT)


def fmt_datetime(value: datetime | None) -> str:
    """
    Local, user-facing rendering; the time is dropped when it is midnight.
    """
    if value is None:
        return ""
    if value.tzinfo is not None:
        value = value.astimezone()
    if (value.hour, value.minute) == (0, 0):
        return value.strftime(DATE_FMT)
    return value.strftime(DATETIME_FMT)


def expand_command_template(template: str, task) -> str:
    """
    Replace every ``{{.field}}`` placeholder in *template* with the value of
    the corresponding task property.

    Raises TemplateError when there is no task, a placeholder is left
    unclosed or a field is unknown.
    """
    if task is None:
        raise TemplateError("no task selected")

    opened = template.count("{{.")
    if opened != len(PLACEHOLDER_REGEX.findall(template)):
        raise TemplateError("unclosed template placeholder in command")

    def _replace(match: re.Match) -> str:
        field = match.group(1)
        value = task.get_property(field)
        if value is None:
            raise TemplateError(f"field '{field}' not found in task")
        return value

    return PLACEHOLDER_REGEX.sub(_replace, template)


def split_command_line(command: str) -> list[str]:
    try:
        return shlex.split(command)
    except ValueError as e:
        raise TemplateError(str(e)) from e


def _get_runtime_home() -> Path:
    override = os.environ.get("WUI_HOME")
    if override:
        return Path(override).expanduser()
    return env.home


def _resolve_log_file_path(file_path: str | Path) -> Path:
    path = Path(file_path)
    if path.is_absolute():
        return path
    return _get_runtime_home() / path


def _default_log_relative_path(kind: str) -> Path:
    """Return logs/log_<YYMMDD>.md style paths under the runtime home."""
    suffix = datetime.now().strftime("%y%m%d")
    return Path("logs") / f"{kind}_{suffix}.md"


def log_msg(
    msg: str,
    file_path: str | Path | None = None,
    print_output: bool = False,
):
    """
    Log a message and save it directly to a file.

    Args:
        msg (str): The message to log.
        file_path (str | Path | None, optional): Overrides the default path when
            provided. Defaults to ``None`` which writes to ``logs/log_<YYMMDD>.md``.
        print_output (bool, optional): If True, also print to console.
    """
    frame = inspect.stack()[1].frame
    func_name = frame.f_code.co_name

    caller_name = func_name

    # Detect instance/class/static context
    if "self" in frame.f_locals:
        cls_name = frame.f_locals["self"].__class__.__name__
        caller_name = f"{cls_name}.{func_name}"
    elif "cls" in frame.f_locals:
        cls_name = frame.f_locals["cls"].__name__
        caller_name = f"{cls_name}.{func_name}"

    lines = [
        f"- {datetime.now().strftime('%H:%M:%S')} log_msg ({caller_name}):  ",
    ]
    lines.extend(
        [
            f"\n{x}"
            for x in textwrap.wrap(
                msg.strip(),
                width=max(shutil.get_terminal_size()[0] - 6, 20),
                initial_indent="   ",
                subsequent_indent="   ",
            )
        ]
    )
    lines.append("\n\n")

    # Best-effort file logging; fall back to console when the file is unwritable.
    if file_path is None:
        file_path = _default_log_relative_path("log")
    log_path = _resolve_log_file_path(file_path)

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a") as f:
            f.writelines(lines)
    except OSError:
        print_output = True

    if print_output:
        print("".join(lines))
