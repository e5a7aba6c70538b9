from __future__ import annotations

import calendar
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta

from dateutil.relativedelta import relativedelta

LIST_PICKER_MAX_VISIBLE = 10


def is_printable_key(key: str) -> bool:
    return len(key) == 1 and key.isprintable()


@dataclass(frozen=True)
class TextBuffer:
    """
    An immutable single-line editing buffer. `history` holds previously
    submitted values (oldest first); `history_index` is -1 while editing a
    fresh value.
    """

    value: str = ""
    cursor: int = 0
    history: tuple[str, ...] = ()
    history_index: int = -1

    @classmethod
    def of(cls, value: str, history: tuple[str, ...] = ()) -> TextBuffer:
        return cls(value=value, cursor=len(value), history=history)

    def cleared(self) -> TextBuffer:
        return replace(self, value="", cursor=0, history_index=-1)

    def set_value(self, value: str) -> TextBuffer:
        return replace(self, value=value, cursor=len(value))

    def insert(self, text: str) -> TextBuffer:
        value = self.value[: self.cursor] + text + self.value[self.cursor :]
        return replace(self, value=value, cursor=self.cursor + len(text))

    def splice(self, offset: int, text: str, remove: str = "") -> TextBuffer:
        """
        Insert *text* at *offset*. When the text after *offset* starts with
        *remove* it is dropped first. The cursor ends after the inserted text.
        """
        offset = max(0, min(offset, len(self.value)))
        before, after = self.value[:offset], self.value[offset:]
        if remove and after.startswith(remove):
            after = after[len(remove) :]
        return replace(self, value=before + text + after, cursor=offset + len(text))

    def backspace(self) -> TextBuffer:
        if self.cursor == 0:
            return self
        value = self.value[: self.cursor - 1] + self.value[self.cursor :]
        return replace(self, value=value, cursor=self.cursor - 1)

    def delete(self) -> TextBuffer:
        if self.cursor >= len(self.value):
            return self
        value = self.value[: self.cursor] + self.value[self.cursor + 1 :]
        return replace(self, value=value)

    def move(self, cursor: int) -> TextBuffer:
        return replace(self, cursor=max(0, min(cursor, len(self.value))))

    def delete_word(self) -> TextBuffer:
        head = self.value[: self.cursor].rstrip()
        cut = head.rfind(" ") + 1
        return replace(
            self, value=self.value[:cut] + self.value[self.cursor :], cursor=cut
        )

    def remember(self) -> TextBuffer:
        """Append the current value to the history (skipping repeats)."""
        value = self.value.strip()
        if not value or (self.history and self.history[-1] == value):
            return replace(self, history_index=-1)
        return replace(self, history=self.history + (value,), history_index=-1)

    def history_prev(self) -> TextBuffer:
        if not self.history:
            return self
        if self.history_index == -1:
            index = len(self.history) - 1
        else:
            index = max(0, self.history_index - 1)
        value = self.history[index]
        return replace(self, value=value, cursor=len(value), history_index=index)

    def history_next(self) -> TextBuffer:
        if self.history_index == -1:
            return self
        index = self.history_index + 1
        if index >= len(self.history):
            return replace(self, value="", cursor=0, history_index=-1)
        value = self.history[index]
        return replace(self, value=value, cursor=len(value), history_index=index)

    def update(self, key: str) -> TextBuffer:
        match key:
            case "space":
                return self.insert(" ")
            case "backspace" | "ctrl+h":
                return self.backspace()
            case "delete" | "ctrl+d":
                return self.delete()
            case "left" | "ctrl+b":
                return self.move(self.cursor - 1)
            case "right" | "ctrl+f":
                return self.move(self.cursor + 1)
            case "home" | "ctrl+a":
                return self.move(0)
            case "end" | "ctrl+e":
                return self.move(len(self.value))
            case "ctrl+u":
                return replace(self, value=self.value[self.cursor :], cursor=0)
            case "ctrl+k":
                return replace(self, value=self.value[: self.cursor])
            case "ctrl+w":
                return self.delete_word()
        if is_printable_key(key):
            return self.insert(key)
        return self


@dataclass(frozen=True)
class Calendar:
    """Month calendar with a selected day; `e` switches to typing the date."""

    selected: date
    editing: bool = False
    edit_buffer: TextBuffer = field(default_factory=TextBuffer)

    @classmethod
    def today(cls) -> Calendar:
        return cls(selected=date.today())

    @property
    def captures_confirm(self) -> bool:
        # while typing a date, enter/escape belong to the text field
        return self.editing

    def value(self) -> str:
        return self.selected.isoformat()

    def update(self, key: str) -> Calendar:
        if self.editing:
            return self._update_editing(key)
        match key:
            case "b" | "B":
                return replace(self, selected=self.selected - relativedelta(months=1))
            case "n" | "N":
                return replace(self, selected=self.selected + relativedelta(months=1))
            case "left" | "h":
                return replace(self, selected=self.selected - timedelta(days=1))
            case "right" | "l":
                return replace(self, selected=self.selected + timedelta(days=1))
            case "up" | "k":
                return replace(self, selected=self.selected - timedelta(weeks=1))
            case "down" | "j":
                return replace(self, selected=self.selected + timedelta(weeks=1))
            case "t":
                return replace(self, selected=date.today())
            case "e":
                return replace(
                    self, editing=True, edit_buffer=TextBuffer.of(self.value())
                )
        return self

    def _update_editing(self, key: str) -> Calendar:
        if key == "enter":
            try:
                parsed = date.fromisoformat(self.edit_buffer.value.strip())
            except ValueError:
                # stay in the text field until the date parses
                return self
            return replace(self, selected=parsed, editing=False)
        if key == "escape":
            return replace(self, editing=False, edit_buffer=TextBuffer())
        buffer = self.edit_buffer.update(key)
        if len(buffer.value) > 10:
            return self
        return replace(self, edit_buffer=buffer)

    def month_rows(self) -> list[list[int]]:
        """Weeks of the selected month, Monday first; 0 pads other months."""
        return calendar.Calendar(firstweekday=0).monthdayscalendar(
            self.selected.year, self.selected.month
        )


@dataclass(frozen=True)
class TimePicker:
    hour: int
    minute: int = 0
    hour_focused: bool = True

    @classmethod
    def now(cls) -> TimePicker:
        return cls(hour=datetime.now().hour)

    captures_confirm = False

    def value(self) -> str:
        return f"T{self.hour:02d}:{self.minute:02d}"

    def update(self, key: str) -> TimePicker:
        match key:
            case "up" | "k":
                if self.hour_focused:
                    return replace(self, hour=(self.hour + 1) % 24)
                return replace(self, minute=(self.minute + 5) % 60)
            case "down" | "j":
                if self.hour_focused:
                    return replace(self, hour=(self.hour - 1) % 24)
                return replace(self, minute=(self.minute - 5) % 60)
            case "right" | "l" | "tab":
                return replace(self, hour_focused=False)
            case "left" | "h" | "shift+tab":
                return replace(self, hour_focused=True)
            case "n":
                return replace(self, hour=datetime.now().hour, minute=0)
        return self


def filter_items(items: tuple[str, ...], text: str) -> tuple[str, ...]:
    """
    Case-insensitive filter: items starting with *text* come first, then
    those merely containing it, each in their original order.
    """
    if not text:
        return items
    needle = text.lower()
    prefixed = tuple(i for i in items if i.lower().startswith(needle))
    contained = tuple(
        i for i in items if needle in i.lower() and not i.lower().startswith(needle)
    )
    return prefixed + contained


@dataclass(frozen=True)
class ListPicker:
    title: str
    items: tuple[str, ...]
    filter_text: str = ""
    index: int = 0
    scroll: int = 0
    max_visible: int = LIST_PICKER_MAX_VISIBLE

    @classmethod
    def create(cls, title: str, items, filter_text: str = "") -> ListPicker:
        return cls(
            title=title,
            items=filter_items(tuple(items), filter_text),
            filter_text=filter_text,
        )

    captures_confirm = False

    @property
    def has_items(self) -> bool:
        return bool(self.items)

    def value(self) -> str:
        if not self.items:
            return ""
        return self.items[self.index]

    def visible(self) -> tuple[str, ...]:
        return self.items[self.scroll : self.scroll + self.max_visible]

    def update(self, key: str) -> ListPicker:
        match key:
            case "up" | "k":
                if self.index == 0:
                    return self
                index = self.index - 1
                return replace(self, index=index, scroll=min(self.scroll, index))
            case "down" | "j":
                if self.index >= len(self.items) - 1:
                    return self
                index = self.index + 1
                scroll = self.scroll
                if index >= scroll + self.max_visible:
                    scroll = index - self.max_visible + 1
                return replace(self, index=index, scroll=scroll)
        return self
