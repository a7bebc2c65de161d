"""Tests for branching, projection and the conversation controller.

Covers:
- Display sequence for linear and branched conversations
- Retry (reply replacement) and subtree deletion
- Edit-as-sibling branch creation and selection
- Branch counts, clamping, and projection caching
"""
from __future__ import annotations

from chat.branches import BranchSelector, clamp
from chat.controller import ConversationController
from chat.models import ROOT_KEY, ArtifactKind, Role, TaskStatus


# ── Helper factories ──


def _ids(controller: ConversationController) -> list[str]:
    return [m.id for m in controller.display_sequence()]


def _two_turns(controller: ConversationController) -> tuple[str, str, str, str]:
    u1 = controller.add_user_message("make a sunset")
    a1 = controller.add_assistant_message(u1, "A warm gradient", "void mainImage() {}")
    u2 = controller.add_user_message("add clouds", parent_id=controller.last_assistant_id())
    a2 = controller.add_assistant_message(u2, "Added fbm clouds", "void mainImage() { }")
    return u1, a1, u2, a2


def _assert_alternates(controller: ConversationController) -> None:
    roles = [m.role for m in controller.display_sequence()]
    expected = [Role.USER if i % 2 == 0 else Role.ASSISTANT for i in range(len(roles))]
    assert roles == expected


class TestDisplaySequence:

    def test_empty_conversation(self):
        assert ConversationController().display_sequence() == []

    def test_root_user_then_reply(self):
        c = ConversationController()
        u1 = c.add_user_message("make a sunset")
        assert _ids(c) == [u1]

        a1 = c.add_assistant_message(u1, "explanation", "code...")
        assert _ids(c) == [u1, a1]
        reply = c.display_sequence()[1]
        assert reply.code_artifact.kind == ArtifactKind.GENERATED
        assert reply.code_artifact.label == "Generated shader"

    def test_chained_submissions(self):
        c = ConversationController()
        u1, a1, u2, a2 = _two_turns(c)
        assert _ids(c) == [u1, a1, u2, a2]
        assert c.store.find(u2).parent_id == a1
        _assert_alternates(c)

    def test_projection_is_idempotent(self):
        c = ConversationController()
        _two_turns(c)
        assert c.display_sequence() == c.display_sequence()

    def test_projection_refreshes_after_mutation(self):
        c = ConversationController()
        u1 = c.add_user_message("first")
        assert _ids(c) == [u1]
        a1 = c.add_assistant_message(u1, "reply")
        assert _ids(c) == [u1, a1]

    def test_user_code_context_artifact(self):
        c = ConversationController()
        u1 = c.add_user_message("tweak it", code_context="void mainImage() {}", thumbnail="data:x")
        artifact = c.store.find(u1).code_artifact
        assert artifact.kind == ArtifactKind.USER_CONTEXT
        assert artifact.label == "Code sent"
        assert artifact.thumbnail == "data:x"

    def test_no_artifact_without_code(self):
        c = ConversationController()
        u1 = c.add_user_message("hello")
        a1 = c.add_assistant_message(u1, "boom", is_error=True)
        assert c.store.find(u1).code_artifact is None
        assert c.store.find(a1).code_artifact is None
        assert c.store.find(a1).is_error is True


class TestRetry:

    def test_retry_removes_reply(self):
        c = ConversationController()
        u1 = c.add_user_message("make a sunset", code_context="old code")
        c.add_assistant_message(u1, "explanation", "code...")

        request = c.retry(u1)
        assert request.content == "make a sunset"
        assert request.code_context == "old code"
        assert _ids(c) == [u1]

    def test_retry_deletes_everything_after_the_reply(self):
        c = ConversationController()
        u1, a1, u2, a2 = _two_turns(c)
        c.retry(u1)
        for node_id in (a1, u2, a2):
            assert c.store.find(node_id) is None
        assert len(c.store) == 1

    def test_retry_prunes_branch_keys_of_deleted_nodes(self):
        c = ConversationController()
        u1, a1, u2, _ = _two_turns(c)
        c.edit_as_sibling(u2, "add rain")
        assert a1 in c.branches.as_dict()
        c.retry(u1)
        assert a1 not in c.branches.as_dict()

    def test_retry_unknown_or_assistant_id(self):
        c = ConversationController()
        u1 = c.add_user_message("hi")
        a1 = c.add_assistant_message(u1, "hello")
        assert c.retry("missing") is None
        assert c.retry(a1) is None
        assert _ids(c) == [u1, a1]

    def test_retry_without_reply_keeps_node(self):
        c = ConversationController()
        u1 = c.add_user_message("hi")
        assert c.retry(u1).content == "hi"
        assert _ids(c) == [u1]


class TestEditAsSibling:

    def test_edit_root_creates_displayed_sibling(self):
        c = ConversationController()
        u1 = c.add_user_message("make a sunset", code_context="ctx")
        c.add_assistant_message(u1, "explanation", "code...")

        u1b = c.edit_as_sibling(u1, "make a sunrise instead")
        edited = c.store.find(u1b)
        assert edited.parent_id is None
        assert edited.code_artifact.code == "ctx"
        assert c.branch_info(u1).count == 2
        assert c.branch_info(u1b).active_index == 1
        assert _ids(c) == [u1b]

    def test_switching_back_restores_original_path(self):
        c = ConversationController()
        u1 = c.add_user_message("make a sunset")
        a1 = c.add_assistant_message(u1, "explanation")
        c.edit_as_sibling(u1, "make a sunrise")

        c.set_active_branch(ROOT_KEY, 0)
        assert _ids(c) == [u1, a1]

    def test_edit_follow_up_branches_under_assistant(self):
        c = ConversationController()
        u1, a1, u2, a2 = _two_turns(c)
        u2b = c.edit_as_sibling(u2, "add rain")
        a2b = c.add_assistant_message(u2b, "Rain streaks")

        assert c.store.find(u2b).parent_id == a1
        assert _ids(c) == [u1, a1, u2b, a2b]
        c.set_active_branch(a1, 0)
        assert _ids(c) == [u1, a1, u2, a2]
        _assert_alternates(c)

    def test_edit_unknown_returns_none(self):
        c = ConversationController()
        assert c.edit_as_sibling("missing", "x") is None
        assert len(c.store) == 0


class TestBranchInfo:

    def test_count_matches_sibling_total(self):
        c = ConversationController()
        u1 = c.add_user_message("a")
        c.edit_as_sibling(u1, "b")
        c.edit_as_sibling(u1, "c")
        for node in c.store.children(None, Role.USER):
            assert c.branch_info(node.id).count == 3

    def test_unknown_id(self):
        assert ConversationController().branch_info("missing") is None

    def test_out_of_range_index_is_clamped(self):
        c = ConversationController()
        u1 = c.add_user_message("a")
        u1b = c.edit_as_sibling(u1, "b")

        c.set_active_branch(ROOT_KEY, 99)
        assert _ids(c) == [u1b]
        assert c.branch_info(u1).active_index == 1

        c.set_active_branch(ROOT_KEY, -5)
        assert _ids(c) == [u1]
        assert c.branch_info(u1).active_index == 0

    def test_clamp_helper(self):
        assert clamp(5, 3) == 2
        assert clamp(-1, 3) == 0
        assert clamp(1, 3) == 1

    def test_selector_defaults_to_zero(self):
        selector = BranchSelector()
        assert selector.get("anything") == 0
        selector.set("k", 4)
        assert selector.get("k") == 4


class TestLastAssistantAndClear:

    def test_last_assistant_id_follows_display(self):
        c = ConversationController()
        assert c.last_assistant_id() is None
        u1, a1, u2, a2 = _two_turns(c)
        assert c.last_assistant_id() == a2
        c.edit_as_sibling(u2, "something else")
        assert c.last_assistant_id() == a1

    def test_clear_resets_everything(self):
        c = ConversationController()
        u1 = c.add_user_message("a")
        c.edit_as_sibling(u1, "b")
        c.pipeline.start()

        c.clear()
        assert c.display_sequence() == []
        assert c.branches.as_dict() == {}
        assert c.task_state().status == TaskStatus.IDLE

    def test_to_dict_shape(self):
        c = ConversationController()
        u1 = c.add_user_message("a", code_context="code")
        data = c.store.find(u1).to_dict()
        assert data["from"] == "user"
        assert data["parentId"] is None
        assert data["codeArtifact"]["type"] == "user-context"
        assert "isError" not in data
