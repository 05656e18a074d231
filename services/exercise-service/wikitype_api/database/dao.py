"""Data access contract for exercises and its generic SQL implementation.

The contract is structural: anything exposing ``create``, ``find_by_id``,
``update`` and ``delete_by_id`` for the exercise types satisfies
:class:`ExerciseDao`. :class:`SqlExerciseDao` implements it once for every
supported engine; the engine specifics live in a :class:`Dialect`.
"""

from __future__ import annotations

import logging
from contextlib import closing
from dataclasses import dataclass
from datetime import datetime, timezone
from types import ModuleType
from typing import Any, Protocol, Sequence, TypeVar, runtime_checkable

from ..domain.contracts import NewExercise, UpdatedExercise
from ..domain.exercise import Exercise
from .errors import DeserializationError, NotFound, SerializationError, from_driver_error

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT", contravariant=True)
ResultT = TypeVar("ResultT", covariant=True)

TABLE = "exercises"
COLUMNS = ("id", "title", "body", "topic", "created_on", "modified_on")
_SELECT_LIST = ", ".join(COLUMNS)


@runtime_checkable
class Create(Protocol[RequestT, ResultT]):
    def create(self, obj: RequestT) -> ResultT:
        """Persist ``obj`` and return the stored entity."""
        ...


@runtime_checkable
class FindById(Protocol[RequestT, ResultT]):
    def find_by_id(self, id: RequestT) -> ResultT:
        """Return the entity identified by ``id`` or raise ``NotFound``."""
        ...


@runtime_checkable
class Update(Protocol[RequestT, ResultT]):
    def update(self, obj: RequestT) -> ResultT:
        """Apply a partial update and return the entity as stored afterwards."""
        ...


@runtime_checkable
class DeleteById(Protocol[RequestT, ResultT]):
    def delete_by_id(self, id: RequestT) -> ResultT:
        """Remove the entity and return its last stored state."""
        ...


@runtime_checkable
class ExerciseDao(
    Create[NewExercise, Exercise],
    FindById[str, Exercise],
    Update[UpdatedExercise, Exercise],
    DeleteById[str, Exercise],
    Protocol,
):
    """Full CRUD capability over exercises."""


@dataclass(frozen=True)
class Dialect:
    """Engine specifics consumed by :class:`SqlExerciseDao`.

    ``driver`` is the PEP 249 module whose exception hierarchy is
    translated. ``row_lock`` is appended to the read that precedes a delete
    on engines without ``RETURNING``.
    """

    name: str
    driver: ModuleType
    placeholder: str = "%s"
    supports_returning: bool = False
    row_lock: str = ""


def to_epoch(value: datetime) -> int:
    """Convert an aware datetime into the stored epoch-seconds integer."""
    if not isinstance(value, datetime) or value.tzinfo is None:
        raise SerializationError(f"expected a timezone-aware datetime, got {value!r}")
    return int(value.timestamp())


def from_epoch(value: Any) -> datetime:
    """Convert a stored epoch-seconds value back into a UTC datetime."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise DeserializationError(f"expected integer epoch seconds, got {value!r}")
    try:
        return datetime.fromtimestamp(value, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise DeserializationError(f"timestamp {value!r} out of range") from exc


def _text(value: Any, column: str, *, nullable: bool = False) -> str | None:
    if value is None and nullable:
        return None
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DeserializationError(f"column {column} is not valid UTF-8") from exc
    if not isinstance(value, str):
        raise DeserializationError(f"column {column} holds {type(value).__name__}, expected text")
    return value


def _require_storable_id(exercise_id: str) -> None:
    """Raise ``NotFound`` for ids no engine could have stored."""
    try:
        exercise_id.encode("utf-8")
    except UnicodeEncodeError:
        raise NotFound(exercise_id) from None


def map_row(row: Sequence[Any]) -> Exercise:
    """Build an ``Exercise`` from a row selected in ``COLUMNS`` order."""
    if row is None or len(row) != len(COLUMNS):
        raise DeserializationError(f"expected {len(COLUMNS)} columns, got {row!r}")
    exercise_id, title, body, topic, created_on, modified_on = row
    return Exercise(
        id=_text(exercise_id, "id"),
        title=_text(title, "title"),
        body=_text(body, "body"),
        topic=_text(topic, "topic", nullable=True),
        created_on=from_epoch(created_on),
        modified_on=from_epoch(modified_on),
    )


class SqlExerciseDao:
    """Exercise DAO bound to one live DB-API connection.

    Instances are handed out by ``ExerciseStore.session()`` and must not be
    shared between concurrent callers. Transaction boundaries belong to the
    session, not to individual operations.
    """

    def __init__(self, connection: Any, dialect: Dialect) -> None:
        self._connection = connection
        self._dialect = dialect

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    def create(self, obj: NewExercise) -> Exercise:
        params = (
            obj.id,
            obj.title,
            obj.body,
            obj.topic,
            to_epoch(obj.created_on),
            to_epoch(obj.modified_on),
        )
        query = f"INSERT INTO {TABLE} ({_SELECT_LIST}) VALUES ({self._placeholders(len(COLUMNS))})"
        if self._dialect.supports_returning:
            exercise = map_row(self._fetch_one(f"{query} RETURNING {_SELECT_LIST}", params))
        else:
            self._execute(query, params)
            exercise = self.find_by_id(obj.id)
        logger.debug("created exercise %s on %s", exercise.id, self._dialect.name)
        return exercise

    def find_by_id(self, id: str) -> Exercise:
        _require_storable_id(id)
        return self._select(id)

    def update(self, obj: UpdatedExercise) -> Exercise:
        _require_storable_id(obj.id)
        changes = obj.changes()
        ph = self._dialect.placeholder
        assignments = ", ".join(f"{column} = {ph}" for column in changes)
        params = [
            to_epoch(value) if column == "modified_on" else value
            for column, value in changes.items()
        ]
        params.append(obj.id)
        query = f"UPDATE {TABLE} SET {assignments} WHERE id = {ph}"

        if self._dialect.supports_returning:
            row = self._fetch_one(f"{query} RETURNING {_SELECT_LIST}", params)
            if row is None:
                raise NotFound(obj.id)
            exercise = map_row(row)
        else:
            self._execute(query, params)
            # zero matched rows shows up as a failed re-read
            exercise = self._select(obj.id)
        logger.debug("updated exercise %s columns=%s", obj.id, sorted(changes))
        return exercise

    def delete_by_id(self, id: str) -> Exercise:
        _require_storable_id(id)
        ph = self._dialect.placeholder
        if self._dialect.supports_returning:
            row = self._fetch_one(
                f"DELETE FROM {TABLE} WHERE id = {ph} RETURNING {_SELECT_LIST}", (id,)
            )
            if row is None:
                raise NotFound(id)
            exercise = map_row(row)
        else:
            exercise = self._select(id, lock=True)
            self._execute(f"DELETE FROM {TABLE} WHERE id = {ph}", (id,))
        logger.debug("deleted exercise %s", id)
        return exercise

    def _select(self, exercise_id: str, *, lock: bool = False) -> Exercise:
        query = f"SELECT {_SELECT_LIST} FROM {TABLE} WHERE id = {self._dialect.placeholder}"
        if lock:
            query += self._dialect.row_lock
        row = self._fetch_one(query, (exercise_id,))
        if row is None:
            raise NotFound(exercise_id)
        return map_row(row)

    def _placeholders(self, count: int) -> str:
        return ", ".join([self._dialect.placeholder] * count)

    def _execute(self, query: str, params: Sequence[Any]) -> None:
        self._run(query, params, fetch=False)

    def _fetch_one(self, query: str, params: Sequence[Any]) -> Sequence[Any] | None:
        return self._run(query, params, fetch=True)

    def _run(self, query: str, params: Sequence[Any], *, fetch: bool) -> Sequence[Any] | None:
        driver = self._dialect.driver
        try:
            with closing(self._connection.cursor()) as cur:
                cur.execute(query, tuple(params))
                return cur.fetchone() if fetch else None
        except driver.Error as exc:
            raise from_driver_error(exc, driver) from exc
        except UnicodeEncodeError as exc:
            raise SerializationError(f"parameter cannot be encoded for {self._dialect.name}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise DeserializationError(f"column value cannot be decoded: {exc}") from exc
