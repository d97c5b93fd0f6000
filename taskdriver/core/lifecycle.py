"""
Lifecycle reconciler for the task driver.

Applies the outcome of a driver action to a Task the way an orchestrator
would: checks the state machine, calls the driver, and returns an updated
copy of the task together with the TaskEvent recording the change. The
input task is never mutated.
"""

import logging
from dataclasses import dataclass, replace
from typing import Optional

from taskdriver.core.context import Context
from taskdriver.core.driver import Docker
from taskdriver.core.errors import InvalidTransition
from taskdriver.core.state_machine import check_transition, valid_state_transition
from taskdriver.models.config import Config, InvalidConfig
from taskdriver.models.enums import Action, State
from taskdriver.models.result import DockerResult
from taskdriver.models.task import Task, TaskEvent, utcnow


logger = logging.getLogger('taskdriver.lifecycle')


@dataclass(frozen=True)
class Transition:
    """
    Result of applying a driver action to a task.

    event is None when the action was rejected and the task did not change.
    """
    task: Task
    result: DockerResult
    event: Optional[TaskEvent] = None

    @property
    def ok(self) -> bool:
        return self.result.ok


def transition(task: Task, dst: State) -> Task:
    """
    Return a copy of the task moved to dst.

    Raises:
        InvalidTransition: If the move is not allowed
    """
    check_transition(task.state, dst)
    return replace(task, state=dst)


def _rejected(task: Task, action: Action, dst: State) -> Transition:
    error = InvalidTransition(task.state, dst)
    logger.error(f"Task {task.id}: {error}")
    return Transition(task=task, result=DockerResult(action=action.value, result="rejected", error=error))


def _failed(task: Task, result: DockerResult) -> Transition:
    updated = replace(
        task,
        state=State.FAILED,
        container_id=result.container_id or task.container_id,
        finish_time=utcnow(),
    )
    logger.error(f"Task {task.id} failed during {result.action}: {result.error}")
    return Transition(task=updated, result=result, event=TaskEvent.for_task(updated))


def start_task(driver: Docker, task: Task, ctx: Context = None) -> Transition:
    """
    Run a task's container and move the task to RUNNING or FAILED.

    On success the task records its container id, start time and the host
    port bindings reported by the runtime. A failed inspect after a
    successful start leaves port_bindings empty.

    Args:
        driver: The container driver
        task: A task the state machine allows to move to RUNNING
        ctx: Optional cancellation context

    Returns:
        Transition: The updated task, the driver's result and the event
    """
    if not valid_state_transition(task.state, State.RUNNING):
        return _rejected(task, Action.START, State.RUNNING)

    try:
        config = Config.from_task(task)
    except InvalidConfig as e:
        logger.error(f"Task {task.id} has an invalid configuration: {str(e)}")
        return _failed(task, DockerResult(action=Action.START.value, result="failed", error=e))

    result = driver.run(config, ctx=ctx)
    if not result.ok:
        return _failed(task, result)

    inspection = driver.inspect(result.container_id, ctx=ctx)
    if not inspection.ok:
        logger.warning(f"Task {task.id} is running but its port bindings are unknown")

    updated = replace(
        task,
        state=State.RUNNING,
        container_id=result.container_id,
        start_time=utcnow(),
        port_bindings=inspection.port_bindings() if inspection.ok else {},
    )
    logger.info(f"Task {task.id} running in container {result.container_id}")
    return Transition(task=updated, result=result, event=TaskEvent.for_task(updated))


def stop_task(driver: Docker, task: Task, ctx: Context = None) -> Transition:
    """
    Stop and remove a running task's container.

    Success moves the task to COMPLETED, any failure to FAILED.
    """
    if not valid_state_transition(task.state, State.COMPLETED) or not task.container_id:
        return _rejected(task, Action.STOP, State.COMPLETED)

    result = driver.stop(task.container_id, ctx=ctx)
    if not result.ok:
        return _failed(task, result)

    updated = replace(task, state=State.COMPLETED, finish_time=utcnow())
    logger.info(f"Task {task.id} completed")
    return Transition(task=updated, result=result, event=TaskEvent.for_task(updated))
