"""Identifier and clock helpers shared by the domain and storage layers."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def new_identifier() -> str:
    """Return a random version 4 UUID in its canonical 36 character form.

    Identifiers are stored as text so every supported engine can index them
    the same way.
    """
    return str(uuid.uuid4())


def now() -> datetime:
    """Return the current UTC instant truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)
