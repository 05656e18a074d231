"""GraphQL types and resolvers for exercises.

Resolvers keep no state. Each one converts client input into a domain
contract, runs a single DAO call inside its own ``store.session()`` on a
worker thread and maps storage failures onto GraphQL errors whose
``extensions`` tell clients what went wrong:

* ``{"client_error": "not_found"}`` when the exercise does not exist,
* ``{"client_error": "bad_request"}`` for invalid input or data,
* ``{"server_error": "internal_server_error"}`` for everything else; the
  detail is logged and never returned.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

import strawberry
from fastapi import Depends, Request
from graphql import GraphQLError
from prometheus_client import Counter
from starlette.concurrency import run_in_threadpool
from strawberry.extensions import MaskErrors
from strawberry.fastapi import BaseContext, GraphQLRouter
from strawberry.types import Info

from ..database.backends import ExerciseStore
from ..database.dao import ExerciseDao
from ..database.errors import (
    DatabaseError,
    DeserializationError,
    InvalidQuery,
    NotFound,
    SerializationError,
)
from ..domain.contracts import CLEAR, UNCHANGED, NewExercise, SetTo, UpdatedExercise
from ..domain.exercise import Exercise
from ..security.openid_connect import IdToken
from .auth import authenticate

logger = logging.getLogger(__name__)

API_VERSION = "1.0"
INTERNAL_ERROR_MESSAGE = "An internal server error occurred"
SERVER_ERROR_EXTENSIONS = {"server_error": "internal_server_error"}

DAO_ERRORS = Counter(
    "exercise_dao_errors_total",
    "Exercise data access failures surfaced through the GraphQL API.",
    ["kind"],
)


@strawberry.type(name="Exercise", description="A WikiType typing exercise.")
class ExerciseNode:
    id: str
    title: str
    body: str
    topic: Optional[str]
    created_on: datetime
    modified_on: datetime

    @classmethod
    def from_domain(cls, exercise: Exercise) -> "ExerciseNode":
        return cls(
            id=exercise.id,
            title=exercise.title,
            body=exercise.body,
            topic=exercise.topic,
            created_on=exercise.created_on,
            modified_on=exercise.modified_on,
        )


@strawberry.input(name="NewExercise", description="Fields accepted when creating an exercise.")
class NewExerciseInput:
    title: str
    body: str
    # See https://en.wikipedia.org/wiki/Portal:Contents/Portals for an idea.
    topic: Optional[str] = None

    def to_contract(self) -> NewExercise:
        return NewExercise(title=self.title, body=self.body, topic=self.topic)


@strawberry.input(
    name="UpdatedExercise",
    description="Partial update of an exercise. Omitted fields are left unchanged; "
    "an explicit null topic clears it.",
)
class UpdatedExerciseInput:
    id: str
    title: Optional[str] = strawberry.UNSET
    body: Optional[str] = strawberry.UNSET
    topic: Optional[str] = strawberry.UNSET

    def to_contract(self) -> UpdatedExercise:
        if self.topic is strawberry.UNSET:
            topic = UNCHANGED
        elif self.topic is None:
            topic = CLEAR
        else:
            topic = SetTo(self.topic)
        return UpdatedExercise(
            id=self.id,
            title=None if self.title is strawberry.UNSET else self.title,
            body=None if self.body is strawberry.UNSET else self.body,
            topic=topic,
        )


class Context(BaseContext):
    """Per-request state handed to resolvers."""

    def __init__(self, store: ExerciseStore, id_token: Optional[IdToken] = None) -> None:
        super().__init__()
        self.store = store
        self.id_token = id_token


async def get_context(
    request: Request,
    id_token: Optional[IdToken] = Depends(authenticate),
) -> Context:
    return Context(store=request.app.state.exercise_store, id_token=id_token)


def _bad_request(message: str) -> GraphQLError:
    return GraphQLError(message, extensions={"client_error": "bad_request"})


def to_graphql_error(exc: DatabaseError) -> GraphQLError:
    """Map a data access failure onto the error returned to clients."""
    if isinstance(exc, NotFound):
        return GraphQLError("Resource not found", extensions={"client_error": "not_found"})
    if isinstance(exc, (InvalidQuery, SerializationError, DeserializationError)):
        return _bad_request(str(exc))
    logger.error("exercise storage failure: %s", exc, exc_info=exc.__cause__ or exc)
    return GraphQLError(INTERNAL_ERROR_MESSAGE, extensions=dict(SERVER_ERROR_EXTENSIONS))


def _contract(build: Callable[[], object]):
    try:
        return build()
    except ValueError as exc:
        raise _bad_request(str(exc)) from exc


def _in_session(store: ExerciseStore, operation: Callable[[ExerciseDao], Exercise]) -> Exercise:
    with store.session() as dao:
        return operation(dao)


async def _run(info: Info, operation: Callable[[ExerciseDao], Exercise]) -> ExerciseNode:
    try:
        exercise = await run_in_threadpool(_in_session, info.context.store, operation)
    except DatabaseError as exc:
        DAO_ERRORS.labels(kind=exc.kind).inc()
        raise to_graphql_error(exc) from exc
    return ExerciseNode.from_domain(exercise)


@strawberry.type
class Query:
    @strawberry.field(description="Version of the exercise API.")
    def api_version(self) -> str:
        return API_VERSION

    @strawberry.field(description="Look up an exercise by id.")
    async def exercise(self, info: Info, id: str) -> ExerciseNode:
        return await _run(info, lambda dao: dao.find_by_id(id))


@strawberry.type
class Mutation:
    @strawberry.mutation(description="Create an exercise; the id and timestamps are generated.")
    async def create_exercise(self, info: Info, input: NewExerciseInput) -> ExerciseNode:
        new_exercise = _contract(input.to_contract)
        return await _run(info, lambda dao: dao.create(new_exercise))

    @strawberry.mutation(description="Update the fields present in the input.")
    async def update_exercise(self, info: Info, input: UpdatedExerciseInput) -> ExerciseNode:
        updated_exercise = _contract(input.to_contract)
        return await _run(info, lambda dao: dao.update(updated_exercise))

    @strawberry.mutation(description="Delete an exercise and return its last state.")
    async def delete_exercise_by_id(self, info: Info, id: str) -> ExerciseNode:
        return await _run(info, lambda dao: dao.delete_by_id(id))


def _is_unexpected(error: GraphQLError) -> bool:
    original = error.original_error
    return original is not None and not isinstance(original, GraphQLError)


class MaskUnexpectedErrors(MaskErrors):
    """Report unexpected resolver failures the same way as storage faults."""

    def __init__(self) -> None:
        super().__init__(should_mask_error=_is_unexpected, error_message=INTERNAL_ERROR_MESSAGE)

    def anonymise_error(self, error: GraphQLError) -> GraphQLError:
        masked = super().anonymise_error(error)
        masked.extensions = dict(SERVER_ERROR_EXTENSIONS)
        return masked


class ExerciseSchema(strawberry.Schema):
    def process_errors(self, errors: List[GraphQLError], execution_context=None) -> None:
        # mapped errors were already logged where they were raised
        unexpected = [error for error in errors if not isinstance(error.original_error, GraphQLError)]
        if unexpected:
            super().process_errors(unexpected, execution_context)


schema = ExerciseSchema(
    query=Query,
    mutation=Mutation,
    extensions=[MaskUnexpectedErrors],
)

router = GraphQLRouter(schema, context_getter=get_context)
