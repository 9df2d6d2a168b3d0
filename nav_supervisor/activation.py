"""Activate/deactivate sub-protocol for a single path-following mission."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from functools import partial
import threading

from .errors import ExecutorUnavailable
from .geometry import Path, Pose2D
from .interfaces import (
    ExecutionOutcome,
    ExecutionParams,
    ExecutorClient,
    Logger,
    NullListener,
    NullLogger,
    SupervisorListener,
)


class MissionState(Enum):
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"


@dataclass(frozen=True)
class MissionStatus:
    state: MissionState = MissionState.IDLE
    goal: Pose2D | None = None


CompletionHandler = Callable[[ExecutionOutcome, Pose2D | None], None]


class LoggingCompletionHandler:
    """Default completion handler: reports the outcome and does nothing else.

    Recovery after a failed command (e.g. resuming after a collision stop) is
    not implemented; install a different handler to add it.
    """

    def __init__(self, logger: Logger) -> None:
        self._logger = logger

    def __call__(self, outcome: ExecutionOutcome, goal: Pose2D | None) -> None:
        target = "unknown goal" if goal is None else f"goal ({goal.x:.2f}, {goal.y:.2f})"
        if outcome.status == ExecutionOutcome.SUCCEEDED:
            self._logger.info(f"Path execution toward {target} finished.")
            return
        detail = f": {outcome.detail}" if outcome.detail else ""
        self._logger.warning(
            f"Path execution toward {target} ended with {outcome.status}{detail}"
        )


class ActivationController:
    """Owns the mission state and every command sent to the path executor.

    The state is ACTIVE exactly while a command issued here has not been
    cancelled. Each submitted command gets a generation number; completion
    notifications from older generations are dropped.
    """

    def __init__(
        self,
        executor: ExecutorClient,
        *,
        params: ExecutionParams | None = None,
        ready_timeout_sec: float = 1.0,
        listener: SupervisorListener | None = None,
        logger: Logger | None = None,
        completion_handler: CompletionHandler | None = None,
    ) -> None:
        self._executor = executor
        self._params = params or ExecutionParams()
        self._ready_timeout_sec = float(ready_timeout_sec)
        self._listener = listener or NullListener()
        self._logger = logger or NullLogger()
        self._completion_handler = completion_handler or LoggingCompletionHandler(
            self._logger
        )
        self._lock = threading.Lock()
        self._status = MissionStatus()
        self._generation = 0

    @property
    def status(self) -> MissionStatus:
        with self._lock:
            return self._status

    @property
    def is_active(self) -> bool:
        return self.status.state is MissionState.ACTIVE

    @property
    def params(self) -> ExecutionParams:
        return self._params

    def deactivate(self, frame_id: str) -> bool:
        """Cancel the outstanding command, if any, and return to IDLE.

        Safe to call at any time. The executor is always asked to cancel, since
        a command may still be in flight or may have ended unseen. The empty path
        is emitted on every call so consumers always see the cleared state.
        Returns True when a mission was active.
        """
        with self._lock:
            was_active = self._status.state is MissionState.ACTIVE
            self._generation += 1

        if was_active:
            self._logger.info("Deactivating path planner.")
        self._executor.cancel_all()

        with self._lock:
            self._status = MissionStatus()
        self._listener.on_empty_path_published(frame_id)
        return was_active

    def activate(self, goal: Pose2D, path: Path, frame_id: str) -> None:
        """Start following ``path`` toward ``goal``.

        Raises ExecutorUnavailable, leaving the state IDLE, when the executor
        endpoint is not ready within the configured timeout or refuses the
        initial path. The goal is not retried.
        """
        if self.is_active:
            self.deactivate(frame_id)

        if not self._executor.wait_ready(self._ready_timeout_sec):
            raise ExecutorUnavailable(
                "Path executor didn't connect within "
                f"{self._ready_timeout_sec:.1f} seconds"
            )

        with self._lock:
            self._status = MissionStatus(state=MissionState.ACTIVE, goal=goal)
        try:
            self.send(path, frame_id)
        except Exception as error:
            with self._lock:
                self._status = MissionStatus()
                self._generation += 1
            raise ExecutorUnavailable(
                f"Path executor did not accept the initial path: {error}"
            ) from error

    def send(self, path: Path, frame_id: str) -> None:
        """Submit ``path`` as the current command; only valid while ACTIVE."""
        with self._lock:
            if self._status.state is not MissionState.ACTIVE:
                raise RuntimeError("cannot send a path while the mission is idle")
            self._generation += 1
            generation = self._generation

        self._executor.send_path(
            path,
            self._params,
            partial(self._handle_done, generation),
            frame_id=frame_id,
        )
        self._listener.on_path_published(path, frame_id)

    def _handle_done(self, generation: int, outcome: ExecutionOutcome) -> None:
        with self._lock:
            current = generation == self._generation
            goal = self._status.goal
        if not current:
            self._logger.debug(
                f"Ignoring {outcome.status} from superseded path command #{generation}"
            )
            return
        self._completion_handler(outcome, goal)
