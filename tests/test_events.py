"""События жизненного цикла"""

import pytest

from core.events import EventRegistry
from core.exceptions import ValidationError
from models.user import User


class Abort(Exception):
    pass


@pytest.fixture
def recorded(bound):
    calls = []
    for event in ("creating", "created", "updating", "updated",
                  "deleting", "deleted", "restoring", "restored"):
        User.on(event, lambda payload, event=event: calls.append((event, dict(payload))))
    return calls


def test_mutations_fire_events_in_order(recorded):
    user = User.create({"name": "Jonas", "email": "jonas@example.com"})
    User.update(user["id"], {"name": "Jonas A."})
    User.delete(user["id"])
    User.restore(user["id"])

    assert [event for event, _ in recorded] == [
        "creating", "created",
        "updating", "updated",
        "deleting", "deleted",
        "restoring", "restored",
    ]


def test_payloads(recorded):
    user = User.create({"name": "Maria", "email": "maria@example.com"})
    User.update(user["id"], {"name": "Maria S."})

    events = dict(recorded)
    assert "id" not in events["creating"]
    assert events["created"]["id"] == user["id"]
    assert events["updating"]["id"] == user["id"]
    assert events["updated"]["name"] == "Maria S."


def test_noop_update_fires_nothing(recorded):
    user = User.create({"name": "Carlos", "email": "carlos@example.com"})
    recorded.clear()

    assert User.update(user["id"], {"unknown": 1}) is False
    assert recorded == []


def test_callbacks_run_in_registration_order(bound):
    order = []
    User.on("creating", lambda payload: order.append("first"))
    User.on("creating", lambda payload: order.append("second"))

    User.create({"name": "Jonas", "email": "jonas@example.com"})

    assert order == ["first", "second"]


def test_before_event_failure_aborts_write(bound):
    def reject(payload):
        raise Abort("rejected")

    User.on("creating", reject)

    with pytest.raises(Abort):
        User.create({"name": "Jonas", "email": "jonas@example.com"})

    assert User.count() == 0


def test_after_event_failure_happens_after_write(bound):
    def explode(payload):
        raise Abort("too late")

    User.on("created", explode)

    with pytest.raises(Abort):
        User.create({"name": "Jonas", "email": "jonas@example.com"})

    assert User.count() == 1


def test_deleting_failure_keeps_row(bound):
    user = User.create({"name": "Jonas", "email": "jonas@example.com"})

    def reject(payload):
        raise Abort("keep it")

    User.on("deleting", reject)

    with pytest.raises(Abort):
        User.delete(user["id"])

    assert User.find(user["id"]) is not None


def test_after_event_failure_inside_transaction_rolls_back(bound):
    def explode(payload):
        raise Abort("undo")

    User.on("created", explode)

    with pytest.raises(Abort):
        with User.transaction():
            User.create({"name": "Jonas", "email": "jonas@example.com"})

    assert User.count() == 0


def test_unknown_event_is_rejected(bound):
    with pytest.raises(ValidationError):
        User.on("saving", lambda payload: None)


def test_listeners_are_scoped_per_entity(post_model):
    registry = EventRegistry()
    registry.on(User, "created", print)

    assert registry.listeners(User, "created") == [print]
    assert registry.listeners(post_model, "created") == []
