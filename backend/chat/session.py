"""Async chat session: drives generation on top of ConversationController.

A session owns one conversation. Generation is fire-and-await and cannot be
cancelled, so every completion re-checks the tree before writing: a reply
whose target user message was deleted (retry, clear) or already answered is
logged and dropped.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from chat.controller import ConversationController
from chat.models import BranchInfo, MessageNode, Role, TaskState
from chat.pipeline import DEFAULT_RESET_DELAY, TaskPipeline

logger = logging.getLogger(__name__)

# (prompt, model, code) -> {"code": str, "explanation": str}
GenerateFn = Callable[[str, str | None, str | None], Awaitable[dict]]
# generated code -> thumbnail data URL (or None)
ThumbnailFn = Callable[[str], Awaitable[str | None]]
ChangeCallback = Callable[[], Awaitable[None]]

DEFAULT_TIMEOUT = 30.0
TIMEOUT_MESSAGE = "AI request timed out"


class ChatSession:
    def __init__(
        self,
        generate: GenerateFn,
        model: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        render_thumbnail: ThumbnailFn | None = None,
        on_change: ChangeCallback | None = None,
        reset_delay: float = DEFAULT_RESET_DELAY,
    ):
        self._generate = generate
        self.model = model
        self.timeout = timeout
        self._render_thumbnail = render_thumbnail
        self._on_change = on_change
        self.controller = ConversationController(
            TaskPipeline(reset_delay=reset_delay, on_change=self._on_task_change)
        )
        self._pending = 0
        self._run_seq = 0
        self._in_command = False
        self._reset_notify: asyncio.Task | None = None

    # -- read side -----------------------------------------------------------

    @property
    def busy(self) -> bool:
        return self._pending > 0

    def display_sequence(self) -> list[MessageNode]:
        return self.controller.display_sequence()

    def task_state(self) -> TaskState:
        return self.controller.task_state()

    def branch_info(self, user_message_id: str) -> BranchInfo | None:
        return self.controller.branch_info(user_message_id)

    def snapshot(self) -> dict:
        """JSON-ready view of everything the chat panel renders."""
        messages = self.display_sequence()
        branches = {}
        for m in messages:
            if m.role == Role.USER:
                branches[m.id] = self.controller.branch_info(m.id).to_dict()
        return {
            "messages": [m.to_dict() for m in messages],
            "taskState": self.task_state().to_dict(),
            "branches": branches,
            "model": self.model,
        }

    # -- commands ------------------------------------------------------------

    async def submit(self, text: str, code: str | None = None,
                     thumbnail: str | None = None) -> str | None:
        """Add a prompt after the last displayed reply and generate an answer."""
        text = text.strip()
        if not text:
            return None
        parent_id = self.controller.last_assistant_id()
        user_id = self.controller.add_user_message(text, code, parent_id, thumbnail)
        await self._generate_reply(user_id, text, code)
        return user_id

    async def retry(self, user_message_id: str) -> bool:
        request = self.controller.retry(user_message_id)
        if request is None:
            logger.info("Retry ignored, unknown user message %s", user_message_id)
            return False
        await self._generate_reply(user_message_id, request.content, request.code_context)
        return True

    async def edit(self, user_message_id: str, new_text: str) -> str | None:
        original = self.controller.store.find(user_message_id)
        new_text = new_text.strip()
        if original is None or not new_text or new_text == original.content:
            return None
        new_id = self.controller.edit_as_sibling(user_message_id, new_text)
        if new_id is None:
            return None
        artifact = original.code_artifact
        await self._generate_reply(new_id, new_text, artifact.code if artifact else None)
        return new_id

    async def set_active_branch(self, key: str, index: int) -> None:
        self.controller.set_active_branch(key, index)
        await self._notify()

    async def clear(self) -> None:
        self._in_command = True
        try:
            self.controller.clear()
        finally:
            self._in_command = False
        await self._notify()

    # -- generation ----------------------------------------------------------

    def _is_stale(self, user_message_id: str) -> bool:
        target = self.controller.store.find(user_message_id)
        return target is None or self.controller.has_reply(user_message_id)

    async def _generate_reply(self, user_message_id: str, prompt: str,
                              code: str | None) -> str | None:
        self._run_seq += 1
        run = self._run_seq
        self._pending += 1
        self.controller.pipeline.start()
        try:
            await self._notify()
            result, error = await self._call_generate(prompt, code)

            if self._is_stale(user_message_id):
                self._drop_stale(run, user_message_id)
                return None
            owns_pipeline = run == self._run_seq

            if error is not None:
                logger.warning("Generation failed for %s: %s", user_message_id, error)
                reply_id = self.controller.add_assistant_message(
                    user_message_id, error, is_error=True,
                )
                if owns_pipeline:
                    self.controller.pipeline.fail()
                return reply_id

            if owns_pipeline:
                self.controller.pipeline.advance_to_compiling()
                await self._notify()
            thumbnail = await self._capture_thumbnail(result["code"])

            # the thumbnail await gives retry/clear a chance to run
            if self._is_stale(user_message_id):
                self._drop_stale(run, user_message_id)
                return None
            reply_id = self.controller.add_assistant_message(
                user_message_id, result["explanation"], result["code"], thumbnail=thumbnail,
            )
            if run == self._run_seq:
                self.controller.pipeline.complete()
            return reply_id
        finally:
            self._pending -= 1
            await self._notify()

    def _drop_stale(self, run: int, user_message_id: str) -> None:
        logger.warning("Dropping stale reply for message %s", user_message_id)
        if run != self._run_seq:
            return
        # Latest run owns the pipeline; settle it from whatever reply won.
        replies = self.controller.store.children(user_message_id, Role.ASSISTANT)
        self._in_command = True
        try:
            if any(not r.is_error for r in replies):
                self.controller.pipeline.complete()
            else:
                self.controller.pipeline.reset()
        finally:
            self._in_command = False

    async def _call_generate(self, prompt: str, code: str | None) -> tuple[dict | None, str | None]:
        """Returns (result, None) on success or (None, error message)."""
        try:
            result = await asyncio.wait_for(
                self._generate(prompt, self.model, code), self.timeout,
            )
        except asyncio.TimeoutError:
            return None, TIMEOUT_MESSAGE
        except Exception as e:
            return None, str(e) or e.__class__.__name__

        if (not isinstance(result, dict)
                or not isinstance(result.get("code"), str)
                or not isinstance(result.get("explanation"), str)):
            return None, "AI response missing required fields (code, explanation)"
        return result, None

    async def _capture_thumbnail(self, code: str) -> str | None:
        if self._render_thumbnail is None or not code:
            return None
        try:
            return await self._render_thumbnail(code)
        except Exception as e:
            logger.warning("Thumbnail capture failed: %s", e)
            return None

    # -- change notification -------------------------------------------------

    async def _notify(self) -> None:
        if self._on_change is not None:
            await self._on_change()

    def _on_task_change(self, state: TaskState) -> None:
        # Catches the delayed complete -> idle reset. Commands notify on their own.
        if self._on_change is None or state.steps or self._in_command:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reset_notify = loop.create_task(self._notify())
        self._reset_notify.add_done_callback(self._reset_notify_done)

    def _reset_notify_done(self, task: asyncio.Task) -> None:
        if self._reset_notify is task:
            self._reset_notify = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("Change notification failed", exc_info=task.exception())
