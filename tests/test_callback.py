import pytest

from cqlxkit.migrate.callback import CallbackEvent, CallbackRegister


SESSION = object()


def test_find_returns_registered_handler():
    reg = CallbackRegister()

    def handler(session, event, name):
        return None

    reg.add(CallbackEvent.BEFORE_MIGRATION, "m1.cql", handler)
    assert reg.find(CallbackEvent.BEFORE_MIGRATION, "m1.cql") is handler
    assert reg.find(CallbackEvent.AFTER_MIGRATION, "m1.cql") is None
    assert reg.find(CallbackEvent.BEFORE_MIGRATION, "m2.cql") is None


def test_add_replaces_handler():
    reg = CallbackRegister()

    def first(session, event, name):
        return "first"

    def second(session, event, name):
        return "second"

    reg.add(CallbackEvent.CALL_COMMENT, "1", first)
    reg.add(CallbackEvent.CALL_COMMENT, "1", second)
    assert reg.find(CallbackEvent.CALL_COMMENT, "1") is second


def test_callback_dispatches_arguments():
    reg = CallbackRegister()
    calls = []

    def handler(session, event, name):
        calls.append((session, event, name))
        return "done"

    reg.add(CallbackEvent.CALL_COMMENT, "2", handler)
    result = reg.callback(SESSION, CallbackEvent.CALL_COMMENT, "2")
    assert result == "done"
    assert calls == [(SESSION, CallbackEvent.CALL_COMMENT, "2")]


def test_missing_call_comment_handler_raises():
    reg = CallbackRegister()
    with pytest.raises(LookupError, match="missing handler"):
        reg.callback(SESSION, CallbackEvent.CALL_COMMENT, "3")


@pytest.mark.parametrize(
    "event", [CallbackEvent.BEFORE_MIGRATION, CallbackEvent.AFTER_MIGRATION]
)
def test_missing_migration_handler_is_ignored(event):
    reg = CallbackRegister()
    assert reg.callback(SESSION, event, "m1.cql") is None


def test_handler_error_propagates():
    reg = CallbackRegister()

    def handler(session, event, name):
        raise RuntimeError("boom")

    reg.add(CallbackEvent.AFTER_MIGRATION, "m1.cql", handler)
    with pytest.raises(RuntimeError, match="boom"):
        reg.callback(SESSION, CallbackEvent.AFTER_MIGRATION, "m1.cql")


def test_same_name_different_events_are_distinct():
    reg = CallbackRegister()

    def before(session, event, name):
        return "before"

    def after(session, event, name):
        return "after"

    reg.add(CallbackEvent.BEFORE_MIGRATION, "m1.cql", before)
    reg.add(CallbackEvent.AFTER_MIGRATION, "m1.cql", after)
    assert reg.callback(SESSION, CallbackEvent.BEFORE_MIGRATION, "m1.cql") == "before"
    assert reg.callback(SESSION, CallbackEvent.AFTER_MIGRATION, "m1.cql") == "after"