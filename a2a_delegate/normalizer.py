"""Reduce whatever a remote agent sent back to plain text."""

from dataclasses import replace
from typing import Any, AsyncGenerator, AsyncIterable

from .types import (
    Artifact,
    Message,
    Task,
    TaskArtifactUpdateEvent,
    TaskState,
    TaskStatus,
    TaskStatusUpdateEvent,
)


def task_text(task: Task) -> str:
    """Text of a task's artifacts, in artifact order then part order.

    Falls back to the status message, then to the last agent message in the
    history, when no artifact carries text.
    """
    text = "".join(a.get_text() for a in task.artifacts)
    if text:
        return text
    if task.status.message is not None and task.status.message.get_text():
        return task.status.message.get_text()
    for message in reversed(task.history):
        if message.role == "agent" and message.get_text():
            return message.get_text()
    return ""


def normalize(event: Any) -> str:
    """Collapse a reply into a single string.

    Accepts a ``Message``, a ``Task``, or a ``(Task, update)`` pair. Anything
    else is rendered with ``str()``.
    """
    if isinstance(event, Message):
        return event.get_text()
    if isinstance(event, Task):
        return task_text(event)
    if (
        isinstance(event, tuple)
        and len(event) == 2
        and isinstance(event[0], Task)
    ):
        return task_text(event[0])
    return str(event)


class TaskAccumulator:
    """Folds streamed task events into one ``Task``."""

    def __init__(self):
        self.task: Task | None = None

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.status.state.is_terminal

    def _ensure_task(self, task_id: str, context_id: str) -> Task:
        if self.task is None:
            self.task = Task(
                id=task_id,
                context_id=context_id,
                status=TaskStatus(state=TaskState.SUBMITTED),
            )
        return self.task

    def apply(
        self,
        event: Task | TaskStatusUpdateEvent | TaskArtifactUpdateEvent,
    ) -> Task:
        """Apply one event and return the updated task."""
        if isinstance(event, Task):
            self.task = event
            return event

        task = self._ensure_task(event.task_id, event.context_id)

        if isinstance(event, TaskStatusUpdateEvent):
            history = task.history
            # The previous status message moves into the history
            if task.status.message is not None:
                history = history + (task.status.message,)
            self.task = replace(task, status=event.status, history=history)
            return self.task

        if isinstance(event, TaskArtifactUpdateEvent):
            self.task = replace(task, artifacts=_merge_artifact(task.artifacts, event))
            return self.task

        raise TypeError(f"cannot apply {type(event).__name__} to a task")


def _merge_artifact(
    artifacts: tuple[Artifact, ...],
    event: TaskArtifactUpdateEvent,
) -> tuple[Artifact, ...]:
    incoming = event.artifact
    for index, existing in enumerate(artifacts):
        if existing.artifact_id != incoming.artifact_id:
            continue
        if event.append:
            merged = replace(existing, parts=existing.parts + incoming.parts)
        else:
            merged = incoming
        return artifacts[:index] + (merged,) + artifacts[index + 1:]
    return artifacts + (incoming,)


async def iter_text_increments(
    events: AsyncIterable[Any],
) -> AsyncGenerator[str, None]:
    """Yield each new piece of text as streamed events arrive.

    A ``Message`` yields its text and ends the stream. Artifact updates yield
    the text of the parts they carry. A completed status carrying a message
    yields that text only if no text has been yielded yet. A completed
    ``Task`` snapshot yields only the text not already yielded.
    """
    accumulator = TaskAccumulator()
    emitted = ""

    async for event in events:
        if isinstance(event, Message):
            text = event.get_text()
            if text:
                yield text
            return

        if isinstance(event, Task):
            accumulator.apply(event)
            text = task_text(event) if event.status.state is TaskState.COMPLETED else ""
            if text.startswith(emitted) and len(text) > len(emitted):
                delta = text[len(emitted):]
                emitted += delta
                yield delta

        elif isinstance(event, TaskArtifactUpdateEvent):
            accumulator.apply(event)
            text = event.artifact.get_text()
            if text:
                emitted += text
                yield text

        elif isinstance(event, TaskStatusUpdateEvent):
            accumulator.apply(event)
            message = event.status.message
            if (
                event.status.state is TaskState.COMPLETED
                and not emitted
                and message is not None
                and message.get_text()
            ):
                emitted = message.get_text()
                yield emitted

        if accumulator.done:
            return
