"""Request contracts accepted by the exercise data access layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union

from ..utils import new_identifier, now


class TopicChange(Enum):
    """Markers for a topic update that carries no new value."""

    UNCHANGED = "unchanged"
    CLEAR = "clear"


UNCHANGED = TopicChange.UNCHANGED
CLEAR = TopicChange.CLEAR


@dataclass(frozen=True, slots=True)
class SetTo:
    """Topic update replacing the stored topic with ``value``."""

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str):
            raise ValueError("topic must be a string")
        _require_utf8("topic", self.value)


TopicUpdate = Union[TopicChange, SetTo]


def _require_utf8(name: str, value: str) -> None:
    # lone surrogates survive JSON decoding but no database can store them
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        raise ValueError(f"exercise {name} is not valid UTF-8 text") from exc


def _require_text(name: str, value: Any) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"exercise {name} must be a non-empty string")
    _require_utf8(name, value)


@dataclass(frozen=True, slots=True)
class NewExercise:
    """Validated inputs required to create an exercise.

    The identifier and both timestamps are generated at construction and
    cannot be supplied by the caller.
    """

    title: str
    body: str
    topic: str | None = None
    id: str = field(default_factory=new_identifier, init=False)
    created_on: datetime = field(default_factory=now, init=False)
    modified_on: datetime = field(init=False)

    def __post_init__(self) -> None:
        _require_text("title", self.title)
        _require_text("body", self.body)
        if self.topic is not None and not isinstance(self.topic, str):
            raise ValueError("exercise topic must be a string or None")
        if self.topic is not None:
            _require_utf8("topic", self.topic)
        object.__setattr__(self, "modified_on", self.created_on)


@dataclass(frozen=True, slots=True)
class UpdatedExercise:
    """Partial update of an existing exercise.

    ``title`` and ``body`` left as ``None`` are not written. ``topic`` is
    three-state: ``UNCHANGED`` leaves the column alone, ``CLEAR`` stores
    NULL and ``SetTo(value)`` stores ``value``.
    """

    id: str
    title: str | None = None
    body: str | None = None
    topic: TopicUpdate = UNCHANGED
    modified_on: datetime = field(default_factory=now, init=False)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id:
            raise ValueError("exercise id must be a non-empty string")
        if self.title is not None:
            _require_text("title", self.title)
        if self.body is not None:
            _require_text("body", self.body)
        if not isinstance(self.topic, (TopicChange, SetTo)):
            raise ValueError("topic must be UNCHANGED, CLEAR or SetTo(value)")

    def changes(self) -> dict[str, Any]:
        """Return the columns this update writes, in a stable order."""
        values: dict[str, Any] = {}
        if self.title is not None:
            values["title"] = self.title
        if self.body is not None:
            values["body"] = self.body
        if self.topic is CLEAR:
            values["topic"] = None
        elif isinstance(self.topic, SetTo):
            values["topic"] = self.topic.value
        values["modified_on"] = self.modified_on
        return values
