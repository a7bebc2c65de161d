"""Data model for the branching chat conversation.

Messages are stored flat; the tree is expressed through ``parent_id``.
``to_dict()`` produces the camelCase shape the browser renders.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum

ROOT_KEY = "root"


def new_id() -> str:
    return str(uuid.uuid4())


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ArtifactKind(str, Enum):
    USER_CONTEXT = "user-context"
    GENERATED = "generated"


class TaskStatus(str, Enum):
    IDLE = "idle"
    THINKING = "thinking"
    COMPILING = "compiling"
    COMPLETE = "complete"
    ERROR = "error"


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"
    ERROR = "error"


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CodeArtifact:
    kind: ArtifactKind
    code: str
    label: str       # "Code sent" / "Generated shader"
    thumbnail: str | None = None  # data URL
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "type": self.kind.value,
            "code": self.code,
            "label": self.label,
        }
        if self.thumbnail:
            d["thumbnail"] = self.thumbnail
        return d


@dataclass(frozen=True)
class MessageNode:
    id: str
    parent_id: str | None
    role: Role
    content: str
    timestamp: float  # epoch milliseconds
    is_error: bool = False
    code_artifact: CodeArtifact | None = None

    @property
    def branch_key(self) -> str:
        """Branch-selector key shared by this node and its siblings."""
        return self.parent_id if self.parent_id is not None else ROOT_KEY

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "parentId": self.parent_id,
            "from": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp,
        }
        if self.is_error:
            d["isError"] = True
        if self.code_artifact is not None:
            d["codeArtifact"] = self.code_artifact.to_dict()
        return d


# ---------------------------------------------------------------------------
# Task progress
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskStep:
    id: str
    label: str
    status: StepStatus = StepStatus.PENDING

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "status": self.status.value}


@dataclass(frozen=True)
class TaskState:
    status: TaskStatus = TaskStatus.IDLE
    steps: tuple[TaskStep, ...] = ()

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass(frozen=True)
class BranchInfo:
    count: int
    active_index: int

    def to_dict(self) -> dict:
        return {"count": self.count, "activeIndex": self.active_index}
