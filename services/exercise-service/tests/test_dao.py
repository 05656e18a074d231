"""Behaviour of the exercise DAO against real engines."""

from __future__ import annotations

import uuid

import pytest

from wikitype_api.database.dao import ExerciseDao, SqlExerciseDao
from wikitype_api.database.errors import NotFound
from wikitype_api.domain.contracts import CLEAR, NewExercise, SetTo, UpdatedExercise

ALBATROSS_BODY = (
    "Albatrosses, of the biological family Diomedeidae, are large seabirds related to the "
    "procellariids, storm petrels, and diving petrels in the order Procellariiformes (the "
    "tubenoses)."
)


def _create(store, title="Albatross", body=ALBATROSS_BODY, topic=None):
    with store.session() as dao:
        return dao.create(NewExercise(title=title, body=body, topic=topic))


def test_session_yields_an_exercise_dao(store):
    with store.session() as dao:
        assert isinstance(dao, SqlExerciseDao)
        assert isinstance(dao, ExerciseDao)


def test_create_then_find_round_trips(store):
    created = _create(store)

    with store.session() as dao:
        found = dao.find_by_id(created.id)

    assert found == created
    assert len(found.id) == 36
    assert found.title == "Albatross"
    assert found.body == ALBATROSS_BODY
    assert found.topic is None
    assert found.created_on == found.modified_on
    assert found.created_on.tzinfo is not None


def test_create_returns_stored_values_not_the_request(store):
    request = NewExercise(title="Albatross", body=ALBATROSS_BODY, topic="Birds")
    with store.session() as dao:
        created = dao.create(request)

    assert created.id == request.id
    assert created.topic == "Birds"
    assert created.created_on == request.created_on


def test_update_title_only_leaves_other_fields(store, backdate):
    created = _create(store, topic="Birds")
    backdate(store, created.id, 10)
    with store.session() as dao:
        before = dao.find_by_id(created.id)
        updated = dao.update(UpdatedExercise(id=created.id, title="Albatross new"))

    assert updated.title == "Albatross new"
    assert updated.body == before.body
    assert updated.topic == "Birds"
    assert updated.created_on == before.created_on
    assert updated.modified_on > before.modified_on


def test_update_topic_set_clear_and_omit(store):
    created = _create(store)

    with store.session() as dao:
        with_topic = dao.update(UpdatedExercise(id=created.id, topic=SetTo("It's a topic!")))
        untouched = dao.update(UpdatedExercise(id=created.id, body="New body"))
        cleared = dao.update(UpdatedExercise(id=created.id, topic=CLEAR))

    assert with_topic.topic == "It's a topic!"
    assert untouched.topic == "It's a topic!"
    assert untouched.body == "New body"
    assert cleared.topic is None
    assert cleared.body == "New body"


def test_delete_returns_previous_state(store):
    created = _create(store)
    with store.session() as dao:
        updated = dao.update(UpdatedExercise(id=created.id, topic=SetTo("Birds")))

    with store.session() as dao:
        deleted = dao.delete_by_id(created.id)

    assert deleted == updated
    with store.session() as dao:
        with pytest.raises(NotFound):
            dao.find_by_id(created.id)


@pytest.mark.parametrize(
    "operation",
    [
        lambda dao, missing: dao.find_by_id(missing),
        lambda dao, missing: dao.update(UpdatedExercise(id=missing, title="Title")),
        lambda dao, missing: dao.update(UpdatedExercise(id=missing, topic=CLEAR)),
        lambda dao, missing: dao.delete_by_id(missing),
    ],
    ids=["find", "update", "update-topic", "delete"],
)
def test_unknown_id_raises_not_found(store, operation):
    missing = str(uuid.uuid4())
    with store.session() as dao:
        with pytest.raises(NotFound) as excinfo:
            operation(dao, missing)
    assert excinfo.value.exercise_id == missing


def test_unencodable_id_is_not_found(store):
    with store.session() as dao:
        with pytest.raises(NotFound):
            dao.find_by_id("\ud800")
        with pytest.raises(NotFound):
            dao.delete_by_id("\ud800")


def test_failed_session_rolls_back(store):
    request = NewExercise(title="Albatross", body=ALBATROSS_BODY)

    with pytest.raises(RuntimeError):
        with store.session() as dao:
            dao.create(request)
            raise RuntimeError("abort")

    with store.session() as dao:
        with pytest.raises(NotFound):
            dao.find_by_id(request.id)


def test_albatross_lifecycle(store, backdate):
    created = _create(store)
    assert created.id
    assert created.topic is None
    assert created.created_on == created.modified_on

    backdate(store, created.id, 5)
    with store.session() as dao:
        before = dao.find_by_id(created.id)
        updated = dao.update(
            UpdatedExercise(id=created.id, title="Albatross new", topic=SetTo("It's a topic!"))
        )
    assert updated.title == "Albatross new"
    assert updated.body == ALBATROSS_BODY
    assert updated.topic == "It's a topic!"
    assert updated.modified_on > before.modified_on

    with store.session() as dao:
        deleted = dao.delete_by_id(created.id)
    assert deleted == updated

    with store.session() as dao:
        with pytest.raises(NotFound):
            dao.find_by_id(created.id)
