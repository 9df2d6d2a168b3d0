"""Mission supervisor: per-tick path maintenance and goal adoption.

All entry points (``on_map_update``, ``on_goal_request``, ``on_tick``) must be
called from one logical thread; the planning engine is not reentrant and its
map/goal setters must not interleave with ``update``.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
import math
import time

from .activation import (
    ActivationController,
    CompletionHandler,
    MissionState,
    MissionStatus,
)
from .errors import GoalUnreachable, PlanningFailure, SupervisorError, TransformFailure
from .geometry import Pose2D, as_path
from .interfaces import (
    ExecutionParams,
    ExecutorClient,
    LocalMapSource,
    Logger,
    NullListener,
    NullLogger,
    PlanningEngine,
    SupervisorListener,
    TransformProvider,
)
from .occupancy_map import MapCache, OccupancyMap


@dataclass(frozen=True)
class SupervisorConfig:
    force_replan_interval_ms: float = 500.0
    executor_ready_timeout_sec: float = 1.0
    target_speed: float = 0.7
    position_tolerance: float = 0.20

    def __post_init__(self) -> None:
        for name in (
            "force_replan_interval_ms",
            "executor_ready_timeout_sec",
            "target_speed",
            "position_tolerance",
        ):
            if not math.isfinite(float(getattr(self, name))):
                raise ValueError(f"{name} must be finite")
        if self.executor_ready_timeout_sec <= 0.0:
            raise ValueError("executor_ready_timeout_sec must be > 0")
        if self.target_speed < 0.0:
            raise ValueError("target_speed must be >= 0")
        if self.position_tolerance < 0.0:
            raise ValueError("position_tolerance must be >= 0")

    def execution_params(self) -> ExecutionParams:
        return ExecutionParams(
            target_speed=float(self.target_speed),
            position_tolerance=float(self.position_tolerance),
        )


class ReplanTimer:
    """Decides when a tick should ask the planner for a full recomputation."""

    def __init__(
        self, interval_ms: float, now_fn: Callable[[], float] = time.monotonic
    ) -> None:
        self._interval_ms = float(interval_ms)
        self._now_fn = now_fn
        self._started = now_fn()

    def restart(self) -> None:
        self._started = self._now_fn()

    def elapsed_ms(self) -> float:
        return (self._now_fn() - self._started) * 1000.0

    def due(self) -> bool:
        if self._interval_ms <= 0.0:
            return False
        return self.elapsed_ms() >= self._interval_ms


class TickOutcome(Enum):
    IDLE = "idle"
    POSE_UNAVAILABLE = "pose_unavailable"
    GOAL_REACHED = "goal_reached"
    PLANNING_FAILED = "planning_failed"
    NO_VALID_PATH = "no_valid_path"
    PATH_UNCHANGED = "path_unchanged"
    PATH_SENT = "path_sent"
    SEND_FAILED = "send_failed"


def same_frame(first: str, second: str) -> bool:
    return str(first).strip().lstrip("/") == str(second).strip().lstrip("/")


class MissionSupervisor:
    """Keeps a valid path in front of the executor for the current goal.

    Failures of any collaborator end the mission (state IDLE) and are logged;
    only a new goal request starts another one. A mission keeps the frame of
    the global map it was adopted in until it ends.
    """

    def __init__(
        self,
        engine: PlanningEngine,
        transforms: TransformProvider,
        executor: ExecutorClient,
        *,
        local_map_source: LocalMapSource | None = None,
        config: SupervisorConfig | None = None,
        listener: SupervisorListener | None = None,
        logger: Logger | None = None,
        completion_handler: CompletionHandler | None = None,
        now_fn: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._transforms = transforms
        self._local_map_source = local_map_source
        self._config = config or SupervisorConfig()
        self._listener = listener or NullListener()
        self._logger = logger or NullLogger()

        self._global_map = MapCache("global")
        self._local_map = MapCache("local")
        self._mission_frame: str | None = None
        self._replan_timer = ReplanTimer(self._config.force_replan_interval_ms, now_fn)
        self._activation = ActivationController(
            executor,
            params=self._config.execution_params(),
            ready_timeout_sec=self._config.executor_ready_timeout_sec,
            listener=self._listener,
            logger=self._logger,
            completion_handler=completion_handler,
        )

    @property
    def config(self) -> SupervisorConfig:
        return self._config

    @property
    def status(self) -> MissionStatus:
        return self._activation.status

    @property
    def state(self) -> MissionState:
        return self._activation.status.state

    @property
    def goal(self) -> Pose2D | None:
        return self._activation.status.goal

    @property
    def global_frame(self) -> str | None:
        return self._global_map.frame_id

    @property
    def mission_frame(self) -> str | None:
        return self._mission_frame

    @property
    def global_map(self) -> OccupancyMap | None:
        return self._global_map.snapshot()

    @property
    def local_map(self) -> OccupancyMap | None:
        return self._local_map.snapshot()

    def on_map_update(self, occupancy_map: OccupancyMap) -> None:
        """Replace the cached global map; the engine receives it on the next goal."""
        self._global_map.replace(occupancy_map)

    def on_goal_request(self, goal: Pose2D, frame_id: str) -> bool:
        """Drop the current mission and try to start one toward ``goal``.

        Returns True when the mission became ACTIVE. Any failure is logged
        once and leaves the supervisor IDLE.
        """
        self._deactivate()
        try:
            self._adopt_goal(goal, frame_id)
        except SupervisorError as error:
            getattr(self._logger, error.log_level)(str(error))
            return False
        self._logger.info("Goal updated.")
        return True

    def on_tick(self) -> TickOutcome:
        if not self._activation.is_active:
            return TickOutcome.IDLE

        frame_id = self._mission_frame or ""
        try:
            pose = self._transforms.current_pose(frame_id)
        except TransformFailure as error:
            self._logger.error(f"Error getting the robot position. Reason: {error}")
            self._deactivate()
            return TickOutcome.POSE_UNAVAILABLE

        if self._engine.is_goal_reached(pose):
            self._logger.info("Goal reached.")
            self._deactivate()
            return TickOutcome.GOAL_REACHED

        self._refresh_local_map()
        try:
            self._engine.update(pose, self._replan_timer.due())
        except Exception as error:
            self._logger.error(f"Error planning a path. Reason: {error}")
            self._deactivate()
            return TickOutcome.PLANNING_FAILED

        if not self._engine.has_valid_path():
            self._logger.warning("Planner has no valid path to the goal anymore.")
            self._deactivate()
            return TickOutcome.NO_VALID_PATH

        if not self._engine.has_new_local_path():
            return TickOutcome.PATH_UNCHANGED

        self._logger.info("Publishing new local path")
        try:
            self._activation.send(as_path(self._engine.get_local_path()), frame_id)
        except Exception as error:
            self._logger.error(f"Error sending the local path. Reason: {error}")
            self._deactivate()
            return TickOutcome.SEND_FAILED
        self._replan_timer.restart()
        self._listener.on_waypoints_ready(tuple(self._engine.get_global_waypoints()))
        return TickOutcome.PATH_SENT

    def stop(self) -> None:
        """Cancel any running mission; used when the hosting process shuts down."""
        self._deactivate()

    def _adopt_goal(self, goal: Pose2D, frame_id: str) -> None:
        global_map = self._global_map.snapshot()
        if global_map is None:
            raise TransformFailure("Cannot adopt goal: no global map received yet.")
        map_frame = global_map.frame_id

        goal_in_map = goal
        if not same_frame(frame_id, map_frame):
            try:
                goal_in_map = self._transforms.transform(goal, frame_id, map_frame)
            except TransformFailure as error:
                raise TransformFailure(
                    f"Cannot transform goal into map coordinates. Reason: {error}"
                ) from error

        try:
            robot_pose = self._transforms.current_pose(map_frame)
        except TransformFailure as error:
            raise TransformFailure(
                f"Error getting the robot position. Reason: {error}"
            ) from error

        self._engine.set_global_map(global_map)
        self._refresh_local_map()
        try:
            self._engine.set_goal(robot_pose, goal_in_map)
        except Exception as error:
            raise PlanningFailure(f"Cannot plan a path. Reason: {error}") from error

        if not self._engine.has_valid_path():
            raise GoalUnreachable("No path found!")

        self._activation.activate(
            goal_in_map, as_path(self._engine.get_local_path()), map_frame
        )
        self._mission_frame = map_frame
        self._replan_timer.restart()
        self._listener.on_global_path_ready(tuple(self._engine.get_global_path()), map_frame)
        self._listener.on_waypoints_ready(tuple(self._engine.get_global_waypoints()))

    def _refresh_local_map(self) -> None:
        if self._local_map_source is None:
            return
        snapshot = self._local_map_source.snapshot()
        if snapshot is None:
            return
        self._local_map.replace(snapshot)
        self._engine.set_local_map(snapshot)

    def _deactivate(self) -> None:
        frame_id = self._mission_frame or self._global_map.frame_id or ""
        self._mission_frame = None
        self._activation.deactivate(frame_id)
