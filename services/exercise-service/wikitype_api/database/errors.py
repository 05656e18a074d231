"""Storage-agnostic failures raised by the exercise data access layer.

Backend bindings are the only place that sees driver exceptions; they turn
them into one of the classes below with :func:`from_driver_error` so code
above the storage layer never depends on a particular driver.
"""

from __future__ import annotations

from types import ModuleType


class DatabaseError(Exception):
    """Base class for data access failures."""

    kind = "database_error"


class NotFound(DatabaseError):
    """No exercise exists for the requested id."""

    kind = "not_found"

    def __init__(self, exercise_id: str) -> None:
        super().__init__(f"exercise {exercise_id!r} not found")
        self.exercise_id = exercise_id


class InvalidQuery(DatabaseError):
    """The operation could not be turned into a valid backend query."""

    kind = "invalid_query"


class SerializationError(DatabaseError):
    """An in-memory value could not be converted to its stored form."""

    kind = "serialization_error"


class DeserializationError(DatabaseError):
    """A stored value could not be converted back into an ``Exercise``."""

    kind = "deserialization_error"


class ServerError(DatabaseError):
    """Connection failures, pool exhaustion and unexpected driver errors.

    The message is kept for server-side diagnostics only.
    """

    kind = "server_error"


def from_driver_error(exc: BaseException, driver: ModuleType) -> DatabaseError:
    """Translate a PEP 249 driver exception into the shared taxonomy.

    ``driver`` is the module exposing the driver's exception hierarchy
    (``psycopg``, ``mysql.connector`` or ``sqlite3``).
    """
    if isinstance(exc, driver.ProgrammingError):
        return InvalidQuery(str(exc))
    if isinstance(exc, driver.DataError):
        return SerializationError(str(exc))
    return ServerError(f"{type(exc).__name__}: {exc}")
