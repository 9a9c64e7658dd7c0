"""
Cooperative Task Scheduler for Banana Studio.

Runs generator-based tasks one step per host tick. A task body yields None
to wait for the next tick, or yields another generator to have it run to
completion right away (nested generators are flattened, to any depth, inside
the same tick). Faults are contained per task.

The scheduler is only subscribed to its tick source while it has active
tasks, and it must be used from the thread that drives the ticks.
"""

import inspect
import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Generator, Optional

from banana_studio.core.tick import TickSource


logger = logging.getLogger(__name__)

TaskBody = Generator[Any, None, None]


class TaskState(Enum):
    """Lifecycle state of a scheduled task."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAULTED = "faulted"


TERMINAL_STATES = (TaskState.COMPLETED, TaskState.CANCELLED, TaskState.FAULTED)


@dataclass
class ScheduledTask:
    """A task in the registry."""
    id: int
    body: TaskBody
    owner: Any = None
    state: TaskState = TaskState.PENDING
    steps: int = 0
    error: Optional[BaseException] = None
    # Nested generators currently being driven for this task
    _nested: list[TaskBody] = field(default_factory=list, repr=False)

    @property
    def is_running(self) -> bool:
        return self.state == TaskState.RUNNING

    def close(self) -> None:
        """Close the body and any nested generators, innermost first.

        A generator that raises while closing is logged and skipped.
        """
        for generator in reversed(self._nested):
            self._close_generator(generator)
        self._nested.clear()
        self._close_generator(self.body)

    def _close_generator(self, generator: TaskBody) -> None:
        try:
            generator.close()
        except Exception as e:
            logger.exception(f"Task {self.id} failed to close cleanly: {e}")
            if self.error is None:
                self.error = e


class TaskScheduler:
    """
    Drives suspendable tasks from a host tick source.

    Example:
        >>> ticks = ManualTickSource()
        >>> scheduler = TaskScheduler(ticks)
        >>> task_id = scheduler.start(my_generator(), owner=window)
        >>> ticks.run_until_idle()
    """

    def __init__(self, tick_source: TickSource):
        self.tick_source = tick_source
        self.tasks: dict[int, ScheduledTask] = {}
        self._ids = itertools.count()
        self._subscribed = False
        self._executing: Optional[ScheduledTask] = None
        self._listeners: list[Callable[[int, ScheduledTask], None]] = []

    def __len__(self) -> int:
        return len(self.tasks)

    @property
    def is_subscribed(self) -> bool:
        return self._subscribed

    @property
    def active_ids(self) -> list[int]:
        return list(self.tasks)

    def add_listener(self, callback: Callable[[int, ScheduledTask], None]) -> None:
        """Add a listener for task state changes."""
        self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[int, ScheduledTask], None]) -> None:
        """Remove a listener."""
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify_listeners(self, task: ScheduledTask) -> None:
        """Notify all listeners of a task state change."""
        for listener in list(self._listeners):
            try:
                listener(task.id, task)
            except Exception as e:
                logger.error(f"Task listener error: {e}")

    def _set_state(self, task: ScheduledTask, state: TaskState) -> None:
        task.state = state
        self._notify_listeners(task)

    def start(self, body: TaskBody, owner: Any = None) -> int:
        """Register a task and return its id.

        The first step runs on the next tick, not here.
        """
        if not inspect.isgenerator(body):
            raise TypeError(f"Task body must be a generator, got {type(body).__name__}")

        task = ScheduledTask(id=next(self._ids), body=body, owner=owner)
        self.tasks[task.id] = task
        self._notify_listeners(task)
        self._set_state(task, TaskState.RUNNING)

        if not self._subscribed:
            self.tick_source.subscribe(self._on_tick)
            self._subscribed = True

        logger.debug(f"Started task {task.id} (owner={owner!r})")
        return task.id

    def cancel(self, task_id: int) -> None:
        """Cancel a task. Unknown or finished ids are ignored."""
        task = self.tasks.pop(task_id, None)
        if task is not None:
            self._cancel_task(task)
        self._unsubscribe_if_idle()

    def cancel_owner(self, owner: Any) -> int:
        """Cancel every task started with this owner (identity match).

        Returns:
            Number of tasks cancelled
        """
        matching = [task for task in self.tasks.values() if task.owner is owner]
        for task in matching:
            del self.tasks[task.id]
            self._cancel_task(task)
        self._unsubscribe_if_idle()
        return len(matching)

    def is_active(self, task_id: int) -> bool:
        return task_id in self.tasks

    def get_state(self, task_id: int) -> Optional[TaskState]:
        """State of an active task, None once it has left the registry."""
        task = self.tasks.get(task_id)
        return task.state if task else None

    def _cancel_task(self, task: ScheduledTask) -> None:
        if task.state in TERMINAL_STATES:
            return
        self._set_state(task, TaskState.CANCELLED)
        logger.debug(f"Cancelled task {task.id}")
        # A task cancelling itself mid-step is closed once the step returns
        if task is not self._executing:
            task.close()

    def _unsubscribe_if_idle(self) -> None:
        if not self.tasks and self._subscribed:
            self.tick_source.unsubscribe(self._on_tick)
            self._subscribed = False

    def _on_tick(self) -> None:
        """Advance every active task by one step."""
        # Tasks started during this tick wait for the next one
        for task in list(self.tasks.values()):
            if not task.is_running:
                self.tasks.pop(task.id, None)
                continue

            has_more = self._step(task)

            if task.state == TaskState.CANCELLED:
                task.close()
            elif not has_more:
                self.tasks.pop(task.id, None)
                if task.state == TaskState.RUNNING:
                    self._set_state(task, TaskState.COMPLETED)

        self._unsubscribe_if_idle()

    def _step(self, task: ScheduledTask) -> bool:
        """Resume a task once, driving any yielded sub-task to completion.

        Returns:
            True if the task has more steps
        """
        self._executing = task
        try:
            value = next(task.body)
            task.steps += 1
            if inspect.isgenerator(value):
                self._drive_nested(task, value)
            return task.is_running
        except StopIteration:
            return False
        except Exception as e:
            logger.exception(f"Task {task.id} faulted: {e}")
            task.error = e
            if task.state == TaskState.RUNNING:
                self._set_state(task, TaskState.FAULTED)
            task.close()
            return False
        finally:
            self._executing = None

    def _drive_nested(self, task: ScheduledTask, generator: TaskBody) -> None:
        """Run a nested generator (and whatever it yields) to exhaustion."""
        stack = task._nested
        stack.append(generator)
        while stack:
            try:
                value = next(stack[-1])
            except StopIteration:
                stack.pop()
                continue
            if inspect.isgenerator(value):
                stack.append(value)
