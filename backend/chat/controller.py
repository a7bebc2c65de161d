"""Conversation operations over the message tree.

All mutation of the store, the branch selector and the task pipeline goes
through ``ConversationController``. Retry replaces: a user message keeps at
most one assistant reply, and retrying deletes that reply together with
everything that followed it.
"""

import logging
from dataclasses import dataclass

from chat.branches import BranchSelector, clamp
from chat.models import (
    ArtifactKind,
    BranchInfo,
    CodeArtifact,
    MessageNode,
    Role,
    TaskState,
    new_id,
)
from chat.pipeline import TaskPipeline
from chat.projector import TreeProjector
from chat.store import MessageStore

logger = logging.getLogger(__name__)

USER_CODE_LABEL = "Code sent"
GENERATED_CODE_LABEL = "Generated shader"


@dataclass(frozen=True)
class RetryRequest:
    """What the caller needs to regenerate a reply for a user message."""
    content: str
    code_context: str | None = None


class ConversationController:
    def __init__(self, pipeline: TaskPipeline | None = None):
        self.store = MessageStore()
        self.branches = BranchSelector()
        self.pipeline = pipeline or TaskPipeline()
        self.projector = TreeProjector(self.store, self.branches)

    # -- building nodes ------------------------------------------------------

    def add_user_message(
        self,
        content: str,
        code_context: str | None = None,
        parent_id: str | None = None,
        thumbnail: str | None = None,
    ) -> str:
        artifact = None
        if code_context:
            artifact = CodeArtifact(
                kind=ArtifactKind.USER_CONTEXT,
                code=code_context,
                label=USER_CODE_LABEL,
                thumbnail=thumbnail,
            )
        return self.store.add(MessageNode(
            id=new_id(),
            parent_id=parent_id,
            role=Role.USER,
            content=content,
            timestamp=self.store.now(),
            code_artifact=artifact,
        ))

    def add_assistant_message(
        self,
        parent_user_message_id: str,
        content: str,
        generated_code: str | None = None,
        is_error: bool = False,
        thumbnail: str | None = None,
    ) -> str:
        artifact = None
        if generated_code:
            artifact = CodeArtifact(
                kind=ArtifactKind.GENERATED,
                code=generated_code,
                label=GENERATED_CODE_LABEL,
                thumbnail=thumbnail,
            )
        return self.store.add(MessageNode(
            id=new_id(),
            parent_id=parent_user_message_id,
            role=Role.ASSISTANT,
            content=content,
            timestamp=self.store.now(),
            is_error=is_error,
            code_artifact=artifact,
        ))

    # -- branching -----------------------------------------------------------

    def retry(self, user_message_id: str) -> RetryRequest | None:
        """Discard the reply to a user message and everything after it."""
        message = self.store.find(user_message_id)
        if message is None or message.role != Role.USER:
            return None

        for reply in self.store.children(message.id, Role.ASSISTANT):
            removed = self.store.delete_subtree(reply.id)
            self.branches.prune(removed)
        logger.info("Retrying user message %s", message.id)

        artifact = message.code_artifact
        return RetryRequest(
            content=message.content,
            code_context=artifact.code if artifact else None,
        )

    def edit_as_sibling(self, original_message_id: str, new_content: str) -> str | None:
        """Create an edited copy of a user message beside the original and show it."""
        original = self.store.find(original_message_id)
        if original is None or original.role != Role.USER:
            return None

        artifact = original.code_artifact
        new_message_id = self.add_user_message(
            new_content,
            code_context=artifact.code if artifact else None,
            parent_id=original.parent_id,
            thumbnail=artifact.thumbnail if artifact else None,
        )
        siblings = self.store.children(original.parent_id, Role.USER)
        self.branches.set(original.branch_key, len(siblings) - 1)
        logger.info("Edited %s as sibling %s", original.id, new_message_id)
        return new_message_id

    def set_active_branch(self, key: str, index: int) -> None:
        self.branches.set(key, index)

    def branch_info(self, user_message_id: str) -> BranchInfo | None:
        message = self.store.find(user_message_id)
        if message is None or message.role != Role.USER:
            return None
        siblings = self.store.children(message.parent_id, Role.USER)
        return BranchInfo(
            count=len(siblings),
            active_index=clamp(self.branches.get(message.branch_key), len(siblings)),
        )

    # -- read side -----------------------------------------------------------

    def display_sequence(self) -> list[MessageNode]:
        return self.projector.project()

    def task_state(self) -> TaskState:
        return self.pipeline.state

    def last_assistant_id(self) -> str | None:
        for message in reversed(self.display_sequence()):
            if message.role == Role.ASSISTANT:
                return message.id
        return None

    def has_reply(self, user_message_id: str) -> bool:
        return bool(self.store.children(user_message_id, Role.ASSISTANT))

    def clear(self) -> None:
        """Start a new conversation."""
        self.store.clear()
        self.branches.clear()
        self.pipeline.reset()
        logger.info("Conversation cleared")
