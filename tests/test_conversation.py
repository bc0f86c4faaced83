from cityguide.models.conversation import ConversationTurn, Role
from cityguide.services.conversation import ConversationRegistry, ConversationState


def turn(role, text):
    return ConversationTurn(role=role, text=text)


def test_history_is_ordered_snapshot():
    state = ConversationState()
    state.add(Role.USER, "plan")
    state.add(Role.ASSISTANT, "[]")
    history = state.history()
    state.add(Role.USER, "more")
    assert [t.text for t in history] == ["plan", "[]"]
    assert len(state) == 3


def test_alternation_is_not_enforced():
    state = ConversationState()
    state.add(Role.USER, "one")
    state.add(Role.USER, "two")
    assert [t.role for t in state.history()] == [Role.USER, Role.USER]


def test_reset_discards_turns():
    state = ConversationState()
    state.add(Role.USER, "plan")
    state.reset()
    assert state.history() == []


def test_abandon_rolls_back_to_request_start():
    state = ConversationState()
    state.add(Role.USER, "plan")
    state.add(Role.ASSISTANT, "[]")
    ticket = state.begin_request()
    state.add(Role.USER, "refine")
    state.abandon_request(ticket)
    assert [t.text for t in state.history()] == ["plan", "[]"]


def test_newer_request_supersedes_pending_one():
    state = ConversationState()
    first = state.begin_request()
    state.add(Role.USER, "first")
    second = state.begin_request()
    state.add(Role.USER, "second")

    assert not state.is_current(first)
    assert state.complete_request(first, turn(Role.ASSISTANT, "late")) is False
    assert state.complete_request(second, turn(Role.ASSISTANT, "ok")) is True
    assert [t.text for t in state.history()] == ["second", "ok"]


def test_stale_abandon_leaves_newer_history_alone():
    state = ConversationState()
    first = state.begin_request()
    state.add(Role.USER, "first")
    state.begin_request()
    state.add(Role.USER, "second")
    state.abandon_request(first)
    assert [t.text for t in state.history()] == ["second"]


def test_registry_scopes_sessions_by_owner_and_trip():
    registry = ConversationRegistry()
    registry.get("alice", "t1").add(Role.USER, "hi")
    assert registry.get("bob", "t1").history() == []
    assert registry.peek("alice", "t2") is None
    registry.discard("alice", "t1")
    assert registry.peek("alice", "t1") is None


def test_abandoned_fresh_request_restores_previous_history():
    state = ConversationState()
    state.add(Role.USER, "plan")
    state.add(Role.ASSISTANT, "[]")
    ticket = state.begin_request(fresh=True)
    assert state.history() == []
    state.add(Role.USER, "replan")

    state.abandon_request(ticket)

    assert [t.text for t in state.history()] == ["plan", "[]"]


def test_completed_fresh_request_replaces_history():
    state = ConversationState()
    state.add(Role.USER, "plan")
    ticket = state.begin_request(fresh=True)
    state.add(Role.USER, "replan")
    state.complete_request(ticket, turn(Role.ASSISTANT, "new"))

    newer = state.begin_request()
    state.abandon_request(newer)

    assert [t.text for t in state.history()] == ["replan", "new"]


def test_request_superseding_fresh_one_starts_from_last_completed_exchange():
    state = ConversationState()
    state.add(Role.USER, "plan")
    state.add(Role.ASSISTANT, "[]")
    state.begin_request(fresh=True)
    state.add(Role.USER, "replan")

    state.begin_request()

    assert [t.text for t in state.history()] == ["plan", "[]"]
