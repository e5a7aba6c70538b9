from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from dateutil.parser import isoparse

from .shared import fmt_date, fmt_datetime

TW_TIMESTAMP_FMT = "%Y%m%dT%H%M%SZ"

# Fields every taskwarrior export may carry; anything else is a UDA.
KNOWN_FIELDS = {
    "id",
    "uuid",
    "description",
    "project",
    "tags",
    "priority",
    "status",
    "due",
    "scheduled",
    "wait",
    "start",
    "entry",
    "modified",
    "end",
    "depends",
    "annotations",
    "urgency",
    "mask",
    "imask",
    "parent",
    "recur",
    "until",
}

DATE_PROPERTIES = ("due", "scheduled", "wait", "start", "entry", "modified", "end")


def parse_tw_datetime(value: str | None) -> Optional[datetime]:
    """
    Parse a taskwarrior export timestamp ('20250314T120000Z') into an aware
    UTC datetime. Any other ISO 8601 form is accepted as well.
    """
    if not value:
        return None
    try:
        return datetime.strptime(value, TW_TIMESTAMP_FMT).replace(
            tzinfo=timezone.utc
        )
    except ValueError:
        dt = isoparse(value)
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class Annotation:
    entry: Optional[datetime]
    description: str


@dataclass(frozen=True)
class ProjectSummary:
    """Completion data for one project as reported by `task summary`."""

    name: str
    percentage: int


@dataclass(frozen=True)
class Task:
    uuid: str
    description: str = ""
    id: int = 0
    project: str = ""
    priority: str = ""
    status: str = "pending"
    tags: tuple[str, ...] = ()
    annotations: tuple[Annotation, ...] = ()
    due: Optional[datetime] = None
    scheduled: Optional[datetime] = None
    wait: Optional[datetime] = None
    start: Optional[datetime] = None
    entry: Optional[datetime] = None
    modified: Optional[datetime] = None
    end: Optional[datetime] = None
    depends: tuple[str, ...] = ()
    urgency: float = 0.0
    udas: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    @classmethod
    def from_export(cls, raw: dict[str, Any]) -> "Task":
        """Build a Task from one object of `task export` JSON."""
        depends = raw.get("depends") or ()
        if isinstance(depends, str):
            # taskwarrior 2.x exports depends as a comma separated string
            depends = [d for d in depends.split(",") if d]
        annotations = tuple(
            Annotation(
                entry=parse_tw_datetime(a.get("entry")),
                description=a.get("description", ""),
            )
            for a in raw.get("annotations") or ()
        )
        udas = {
            k: str(v) for k, v in raw.items() if k not in KNOWN_FIELDS and v is not None
        }
        return cls(
            uuid=raw.get("uuid", ""),
            id=int(raw.get("id") or 0),
            description=raw.get("description", ""),
            project=raw.get("project", ""),
            priority=raw.get("priority", ""),
            status=raw.get("status", "pending"),
            tags=tuple(raw.get("tags") or ()),
            annotations=annotations,
            due=parse_tw_datetime(raw.get("due")),
            scheduled=parse_tw_datetime(raw.get("scheduled")),
            wait=parse_tw_datetime(raw.get("wait")),
            start=parse_tw_datetime(raw.get("start")),
            entry=parse_tw_datetime(raw.get("entry")),
            modified=parse_tw_datetime(raw.get("modified")),
            end=parse_tw_datetime(raw.get("end")),
            depends=tuple(depends),
            urgency=float(raw.get("urgency") or 0.0),
            udas=udas,
        )

    @property
    def is_active(self) -> bool:
        return self.start is not None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if self.due is None or self.status in ("completed", "deleted"):
            return False
        now = now or datetime.now(timezone.utc)
        return self.due < now

    def get_property(self, name: str) -> Optional[str]:
        """
        Return the string value of a task field, or None when the task has
        no such field. Used to expand custom command templates.
        """
        if name == "id":
            return str(self.id) if self.id else ""
        if name in ("uuid", "description", "project", "priority", "status"):
            return getattr(self, name)
        if name in DATE_PROPERTIES:
            return fmt_datetime(getattr(self, name))
        if name == "tags":
            return " ".join(self.tags)
        if name == "urgency":
            return f"{self.urgency:.2f}"
        if name == "annotations":
            return "\n".join(a.description for a in self.annotations)
        if name == "depends":
            return ",".join(self.depends)
        return self.udas.get(name)

    def to_markdown(self) -> str:
        box = "x" if self.is_completed else " "
        parts = [f"- [{box}] {self.description}"]
        if self.project:
            parts.append(f"project:{self.project}")
        parts.extend(f"+{tag}" for tag in self.tags)
        if self.due:
            parts.append(f"due:{fmt_date(self.due)}")
        lines = [" ".join(parts)]
        for annotation in self.annotations:
            lines.append(f"    - {annotation.description}")
        return "\n".join(lines)
