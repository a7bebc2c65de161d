"""FragCoder chat package: branching conversation core, public API re-exports."""

from chat.controller import ConversationController, RetryRequest
from chat.models import (
    ROOT_KEY,
    ArtifactKind,
    BranchInfo,
    CodeArtifact,
    MessageNode,
    Role,
    StepStatus,
    TaskState,
    TaskStatus,
    TaskStep,
)
from chat.pipeline import TaskPipeline
from chat.session import ChatSession
