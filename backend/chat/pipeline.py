"""Two-step progress state machine for one in-flight generation."""

import asyncio
import logging
from collections.abc import Callable

from chat.models import StepStatus, TaskState, TaskStatus, TaskStep

logger = logging.getLogger(__name__)

IDLE_STATE = TaskState()

DEFAULT_RESET_DELAY = 0.5  # seconds

_STEP_LABELS = (
    ("generate", "Generating shader..."),
    ("compile", "Compiling GLSL..."),
)


def _pipeline_steps() -> tuple[TaskStep, ...]:
    return tuple(TaskStep(id=step_id, label=label) for step_id, label in _STEP_LABELS)


class TaskPipeline:
    """idle -> thinking -> compiling -> complete (-> idle) | error.

    Transitions are plain state replacements. ``complete()`` schedules the
    return to idle on the running event loop; a later ``start()`` or
    ``reset()`` cancels that pending reset (last start wins).
    """

    def __init__(self, reset_delay: float = DEFAULT_RESET_DELAY,
                 on_change: Callable[[TaskState], None] | None = None):
        self.reset_delay = reset_delay
        self.on_change = on_change
        self._state = IDLE_STATE
        self._reset_handle: asyncio.TimerHandle | None = None

    @property
    def state(self) -> TaskState:
        return self._state

    def _set(self, state: TaskState) -> None:
        self._state = state
        if self.on_change is not None:
            self.on_change(state)

    def _cancel_pending_reset(self) -> None:
        if self._reset_handle is not None:
            self._reset_handle.cancel()
            self._reset_handle = None

    def _with_steps(self, status: TaskStatus, update: dict[str, StepStatus]) -> TaskState:
        steps = tuple(
            TaskStep(s.id, s.label, update.get(s.id, s.status)) for s in self._state.steps
        )
        return TaskState(status=status, steps=steps)

    def start(self) -> None:
        self._cancel_pending_reset()
        self._state = TaskState(steps=_pipeline_steps())
        self._set(self._with_steps(TaskStatus.THINKING, {"generate": StepStatus.IN_PROGRESS}))

    def advance_to_compiling(self) -> None:
        self._set(self._with_steps(TaskStatus.COMPILING, {
            "generate": StepStatus.COMPLETE,
            "compile": StepStatus.IN_PROGRESS,
        }))

    def complete(self) -> None:
        self._set(TaskState(
            status=TaskStatus.COMPLETE,
            steps=tuple(TaskStep(s.id, s.label, StepStatus.COMPLETE) for s in self._state.steps),
        ))
        self._cancel_pending_reset()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop to defer on; collapse straight back to idle.
            self.reset()
            return
        self._reset_handle = loop.call_later(self.reset_delay, self._auto_reset)

    def fail(self) -> None:
        self._set(TaskState(
            status=TaskStatus.ERROR,
            steps=tuple(
                TaskStep(s.id, s.label, StepStatus.ERROR)
                if s.status == StepStatus.IN_PROGRESS else s
                for s in self._state.steps
            ),
        ))

    def reset(self) -> None:
        self._cancel_pending_reset()
        if self._state != IDLE_STATE:
            self._set(IDLE_STATE)

    def _auto_reset(self) -> None:
        self._reset_handle = None
        if self._state.status == TaskStatus.COMPLETE:
            logger.debug("Task complete, returning to idle")
            self._set(IDLE_STATE)
