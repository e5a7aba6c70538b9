"""
Decide which picker, if any, applies at the cursor of an input buffer.

Only the text before the cursor is inspected. Keywords must start the buffer
or follow whitespace so that e.g. `+reproj:` never opens the project picker.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class CompletionKind(Enum):
    PROJECT = "project"
    TAG = "tag"
    TIME = "time"
    DATE = "date"


@dataclass(frozen=True)
class CompletionContext:
    kind: CompletionKind
    insert_pos: int
    prefix: str = ""
    field: str = ""


_BOUNDARY = r"(?:^|(?<=\s))"
# due, scheduled down to sch, wait, until
_DATE_KEYWORD = r"(due|sch(?:e(?:d(?:u(?:l(?:e(?:d)?)?)?)?)?)?|wait|until):"

project_regex = re.compile(_BOUNDARY + r"pro(?:j(?:e(?:c(?:t)?)?)?)?:(\S*)$")
tag_regex = re.compile(_BOUNDARY + r"\+([^\s+]*)$")
complete_date_regex = re.compile(_BOUNDARY + _DATE_KEYWORD + r"\d{4}-\d{2}-\d{2}$")
date_field_regex = re.compile(_BOUNDARY + _DATE_KEYWORD + r" ?$")


def _canonical_field(keyword: str) -> str:
    return "scheduled" if keyword.startswith("sch") else keyword


def detect_project(before: str) -> Optional[CompletionContext]:
    match = project_regex.search(before)
    if not match:
        return None
    prefix = match.group(1)
    return CompletionContext(
        CompletionKind.PROJECT, len(before) - len(prefix), prefix, "project"
    )


def detect_tag(before: str) -> Optional[CompletionContext]:
    match = tag_regex.search(before)
    if not match:
        return None
    prefix = match.group(1)
    return CompletionContext(CompletionKind.TAG, len(before) - len(prefix), prefix, "tags")


def detect_complete_date(before: str) -> Optional[CompletionContext]:
    match = complete_date_regex.search(before)
    if not match:
        return None
    return CompletionContext(
        CompletionKind.TIME, len(before), field=_canonical_field(match.group(1))
    )


def detect_date_field(before: str) -> Optional[CompletionContext]:
    match = date_field_regex.search(before)
    if not match:
        return None
    return CompletionContext(
        CompletionKind.DATE, len(before), field=_canonical_field(match.group(1))
    )


DETECTORS = (detect_project, detect_tag, detect_complete_date, detect_date_field)


def detect_completion(text: str, cursor: int) -> Optional[CompletionContext]:
    """
    Return the completion that applies at *cursor*, trying project, tag,
    complete date (offer a time) and date keyword (offer a calendar) in that
    order, or None.

    >>> detect_completion("project:wo", 10)
    CompletionContext(kind=<CompletionKind.PROJECT: 'project'>, insert_pos=8, prefix='wo', field='project')
    """
    cursor = max(0, min(cursor, len(text)))
    before = text[:cursor]
    for detector in DETECTORS:
        context = detector(before)
        if context is not None:
            return context
    return None
