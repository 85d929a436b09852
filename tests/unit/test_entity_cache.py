# =============================================================================
# tests/unit/test_entity_cache.py
# Unit Tests for EntityCache
# =============================================================================

import pytest

from unihost_core.models import MessageStatus
from unihost_core.state.entity_cache import EntityCache


@pytest.fixture
def loaded_cache(factories):
    """Cache with one conversation whose messages and suggestions are loaded (empty)"""
    cache = EntityCache()
    cache.set_conversations([factories.conversation("c1")])
    cache.set_messages("c1", [])
    cache.set_suggestions("c1", [])
    return cache


class TestReplaceAll:
    """Test replace-all loading"""

    def test_unloaded_is_distinct_from_empty(self, factories):
        """A list that was never loaded is None, a loaded empty list is []"""
        cache = EntityCache()
        cache.set_conversations([factories.conversation("c1")])

        assert cache.messages_for("c1") is None
        cache.set_messages("c1", [])
        assert cache.messages_for("c1") == []

    def test_set_messages_for_unknown_conversation_is_ignored(self, factories):
        cache = EntityCache()
        assert not cache.set_messages("nope", [factories.message("nope")])
        assert cache.messages_for("nope") is None

    def test_set_conversations_drops_orphaned_lists(self, factories, loaded_cache):
        """Lists of conversations that vanished from a full reload are released"""
        loaded_cache.set_conversations([factories.conversation("c2")])

        assert loaded_cache.messages_for("c1") is None
        assert loaded_cache.suggestions_for("c1") is None

    def test_replace_overwrites_previous_state(self, factories, loaded_cache):
        loaded_cache.append_message(factories.message("c1", "m1"))
        loaded_cache.set_messages("c1", [factories.message("c1", "m2")])

        assert [m.id for m in loaded_cache.messages_for("c1")] == ["m2"]


class TestAppendMessage:
    """Test set-union append of messages"""

    def test_duplicate_ids_are_suppressed(self, factories, loaded_cache):
        """Each id appears at most once however often it is appended"""
        message = factories.message("c1", "m1")
        other = factories.message("c1", "m2", created_at=factories.at(2))

        results = [loaded_cache.append_message(m) for m in (message, message, other, message, other)]

        assert results == [True, False, True, False, False]
        assert [m.id for m in loaded_cache.messages_for("c1")] == ["m1", "m2"]

    def test_optimistic_and_pushed_copies_collapse(self, factories, loaded_cache):
        """The pushed copy of an optimistically appended message is not added again"""
        optimistic = factories.message("c1", "m1", content="On my way")
        pushed = factories.message("c1", "m1", content="On my way")

        loaded_cache.append_message(optimistic)
        assert not loaded_cache.append_message(pushed)
        assert len(loaded_cache.messages_for("c1")) == 1

    def test_unknown_conversation_is_dropped(self, factories, loaded_cache):
        assert not loaded_cache.append_message(factories.message("other"))
        assert loaded_cache.messages_for("other") is None

    def test_bumps_last_message_at(self, factories, loaded_cache):
        newer = factories.message("c1", "m1", created_at=factories.at(30))
        loaded_cache.append_message(newer)

        conversation = loaded_cache.get_conversation("c1")
        assert conversation.last_message_at == factories.at(30)
        assert conversation.last_message.id == "m1"

    def test_older_message_does_not_move_last_message_back(self, factories, loaded_cache):
        loaded_cache.append_message(factories.message("c1", "new", created_at=factories.at(30)))
        loaded_cache.append_message(factories.message("c1", "old", created_at=factories.at(5)))

        conversation = loaded_cache.get_conversation("c1")
        assert conversation.last_message.id == "new"
        assert conversation.last_message_at == factories.at(30)

    def test_unloaded_list_only_updates_summary(self, factories):
        """Appending before the thread is loaded must not fake a loaded list"""
        cache = EntityCache()
        cache.set_conversations([factories.conversation("c1")])

        assert not cache.append_message(factories.message("c1", "m1", created_at=factories.at(9)))
        assert cache.messages_for("c1") is None
        assert cache.get_conversation("c1").last_message.id == "m1"

    def test_discard_message_rolls_back(self, factories, loaded_cache):
        loaded_cache.append_message(factories.message("c1", "m1", created_at=factories.at(2)))
        loaded_cache.append_message(factories.message("c1", "m2", created_at=factories.at(3)))

        assert loaded_cache.discard_message("c1", "m2")
        assert [m.id for m in loaded_cache.messages_for("c1")] == ["m1"]
        assert loaded_cache.get_conversation("c1").last_message.id == "m1"


class TestConversationMerges:
    """Test keyed upsert and partial merge"""

    def test_upsert_puts_new_conversation_first(self, factories):
        cache = EntityCache()
        cache.set_conversations([factories.conversation("old", last_message_at=factories.at(0))])
        cache.upsert_conversation(factories.conversation("new", last_message_at=factories.at(5)))

        assert [c.id for c in cache.conversations] == ["new", "old"]

    def test_upsert_twice_keeps_one_entry(self, factories):
        cache = EntityCache()
        conversation = factories.conversation("c1")
        cache.upsert_conversation(conversation)
        cache.upsert_conversation(conversation)

        assert len(cache.conversations) == 1

    def test_update_merges_fields(self, factories, loaded_cache):
        assert loaded_cache.update_conversation("c1", ai_session_id="vs-1", check_in_date="2024-07-01")

        conversation = loaded_cache.get_conversation("c1")
        assert conversation.ai_session_id == "vs-1"
        assert conversation.check_in_date == "2024-07-01"
        assert conversation.guest_id == "guest-1"

    def test_update_of_missing_conversation_is_noop(self, loaded_cache):
        version = loaded_cache.version
        assert not loaded_cache.update_conversation("missing", ai_session_id="x")
        assert loaded_cache.version == version

    def test_update_ignores_unknown_fields(self, loaded_cache):
        assert not loaded_cache.update_conversation("c1", not_a_column=1)

    def test_update_never_moves_last_message_at_back(self, factories, loaded_cache):
        loaded_cache.update_conversation("c1", last_message_at=factories.at(10))
        loaded_cache.update_conversation("c1", last_message_at=factories.at(3))

        assert loaded_cache.get_conversation("c1").last_message_at == factories.at(10)

    def test_conversations_sorted_by_activity(self, factories):
        cache = EntityCache()
        cache.set_conversations([
            factories.conversation("a", last_message_at=factories.at(1)),
            factories.conversation("b", last_message_at=factories.at(3)),
        ])
        cache.append_message(factories.message("a", created_at=factories.at(9)))

        assert [c.id for c in cache.conversations] == ["a", "b"]


class TestSuggestions:
    """Test current-suggestion derivation and mark-used"""

    def test_current_is_newest_unused(self, factories, loaded_cache):
        loaded_cache.append_suggestion(factories.suggestion("c1", "s1", created_at=factories.at(1)))
        loaded_cache.append_suggestion(factories.suggestion("c1", "s2", created_at=factories.at(5)))
        loaded_cache.append_suggestion(
            factories.suggestion("c1", "s3", created_at=factories.at(9), is_used=True)
        )

        assert loaded_cache.current_suggestion("c1").id == "s2"

    def test_current_is_none_iff_all_used(self, factories, loaded_cache):
        assert loaded_cache.current_suggestion("c1") is None

        loaded_cache.append_suggestion(factories.suggestion("c1", "s1"))
        assert loaded_cache.current_suggestion("c1") is not None

        loaded_cache.mark_suggestion_used("c1", "s1")
        assert loaded_cache.current_suggestion("c1") is None

    def test_mark_used_is_idempotent(self, factories, loaded_cache):
        loaded_cache.append_suggestion(factories.suggestion("c1", "s1", created_at=factories.at(1)))
        loaded_cache.append_suggestion(factories.suggestion("c1", "s2", created_at=factories.at(2)))

        assert loaded_cache.mark_suggestion_used("c1", "s1")
        assert not loaded_cache.mark_suggestion_used("c1", "s1")

        flags = {s.id: s.is_used for s in loaded_cache.suggestions_for("c1")}
        assert flags == {"s1": True, "s2": False}

    def test_mark_used_without_id_marks_current(self, factories, loaded_cache):
        loaded_cache.append_suggestion(factories.suggestion("c1", "s1", created_at=factories.at(1)))
        loaded_cache.append_suggestion(factories.suggestion("c1", "s2", created_at=factories.at(2)))

        assert loaded_cache.mark_suggestion_used("c1")

        flags = {s.id: s.is_used for s in loaded_cache.suggestions_for("c1")}
        assert flags == {"s1": False, "s2": True}

    def test_duplicate_suggestion_is_suppressed(self, factories, loaded_cache):
        suggestion = factories.suggestion("c1", "s1")
        assert loaded_cache.append_suggestion(suggestion)
        assert not loaded_cache.append_suggestion(suggestion)
        assert len(loaded_cache.suggestions_for("c1")) == 1

    def test_pushed_copy_does_not_unmark(self, factories, loaded_cache):
        """A late pushed INSERT of a suggestion already marked used keeps it used"""
        loaded_cache.append_suggestion(factories.suggestion("c1", "s1"))
        loaded_cache.mark_suggestion_used("c1", "s1")
        loaded_cache.append_suggestion(factories.suggestion("c1", "s1", is_used=False))

        assert loaded_cache.suggestions_for("c1")[0].is_used


class TestMessageStatus:
    """Test monotonic delivery status"""

    def test_status_only_moves_forward(self, factories, loaded_cache):
        loaded_cache.append_message(factories.message("c1", "m1"))

        assert loaded_cache.update_message_status("m1", MessageStatus.READ)
        assert not loaded_cache.update_message_status("m1", MessageStatus.DELIVERED)
        assert loaded_cache.messages_for("c1")[0].status is MessageStatus.READ


class TestListeners:
    """Test change notification"""

    def test_listener_sees_each_change(self, factories, loaded_cache):
        versions = []
        remove = loaded_cache.add_listener(versions.append)

        loaded_cache.append_message(factories.message("c1", "m1"))
        loaded_cache.append_message(factories.message("c1", "m1"))
        remove()
        loaded_cache.append_message(factories.message("c1", "m2"))

        assert len(versions) == 1

    def test_failing_listener_does_not_break_writes(self, factories, loaded_cache):
        def broken(_version):
            raise RuntimeError("boom")

        loaded_cache.add_listener(broken)
        assert loaded_cache.append_message(factories.message("c1", "m1"))
