from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(slots=True)
class Exercise:
    """A WikiType typing exercise as stored in the ``exercises`` table."""

    id: str
    title: str
    body: str
    topic: str | None
    created_on: datetime
    modified_on: datetime
