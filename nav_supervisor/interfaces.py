"""Contracts between the supervisor core and its collaborators.

The core only ever talks to these protocols; the ROS implementations live in
``ros_bridge`` and tests substitute in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .geometry import Path, Point2D, Pose2D
from .occupancy_map import OccupancyMap


@dataclass(frozen=True)
class ExecutionParams:
    target_speed: float = 0.7
    position_tolerance: float = 0.20


@dataclass(frozen=True)
class ExecutionOutcome:
    """Terminal report for one path-following command."""

    status: str
    detail: str = ""

    SUCCEEDED = "SUCCEEDED"
    ABORTED = "ABORTED"
    CANCELED = "CANCELED"
    REJECTED = "REJECTED"
    UNKNOWN = "UNKNOWN"


DoneCallback = Callable[[ExecutionOutcome], None]


@runtime_checkable
class TransformProvider(Protocol):
    def current_pose(self, frame_id: str) -> Pose2D:
        """Return the robot pose in ``frame_id``; raise TransformFailure otherwise."""
        ...

    def transform(self, pose: Pose2D, from_frame: str, to_frame: str) -> Pose2D:
        """Re-express ``pose``; raise TransformFailure when no transform exists."""
        ...


@runtime_checkable
class PlanningEngine(Protocol):
    """Stateful planner. Not safe for concurrent use.

    ``set_goal`` and ``update`` raise PlanningFailure on error; the supervisor
    treats any other exception from them the same way.
    """

    def set_global_map(self, occupancy_map: OccupancyMap) -> None: ...

    def set_local_map(self, occupancy_map: OccupancyMap) -> None: ...

    def set_goal(self, start: Pose2D, goal: Pose2D) -> None: ...

    def update(self, pose: Pose2D, force_replan: bool) -> None: ...

    def is_goal_reached(self, pose: Pose2D) -> bool: ...

    def has_valid_path(self) -> bool: ...

    def has_new_local_path(self) -> bool: ...

    def get_local_path(self) -> Sequence[Pose2D]: ...

    def get_global_path(self) -> Sequence[Point2D]: ...

    def get_global_waypoints(self) -> Sequence[Pose2D]: ...


@runtime_checkable
class ExecutorClient(Protocol):
    def wait_ready(self, timeout_sec: float) -> bool: ...

    def send_path(
        self,
        path: Path,
        params: ExecutionParams,
        on_done: DoneCallback,
        *,
        frame_id: str,
    ) -> None:
        """Submit without blocking; ``on_done`` fires once the command ends."""
        ...

    def cancel_all(self) -> None: ...


@runtime_checkable
class LocalMapSource(Protocol):
    def snapshot(self) -> OccupancyMap | None: ...


class SupervisorListener(Protocol):
    """Outbound notifications consumed by the publishing layer."""

    def on_path_published(self, path: Path, frame_id: str) -> None: ...

    def on_empty_path_published(self, frame_id: str) -> None: ...

    def on_waypoints_ready(self, waypoints: Sequence[Pose2D]) -> None: ...

    def on_global_path_ready(self, points: Sequence[Point2D], frame_id: str) -> None: ...


class NullListener:
    def on_path_published(self, path: Path, frame_id: str) -> None:
        del path, frame_id

    def on_empty_path_published(self, frame_id: str) -> None:
        del frame_id

    def on_waypoints_ready(self, waypoints: Sequence[Pose2D]) -> None:
        del waypoints

    def on_global_path_ready(self, points: Sequence[Point2D], frame_id: str) -> None:
        del points, frame_id


class Logger(Protocol):
    """Subset of the rclpy logger interface used by the core."""

    def debug(self, message: str) -> None: ...

    def info(self, message: str) -> None: ...

    def warning(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class NullLogger:
    def debug(self, message: str) -> None:
        del message

    def info(self, message: str) -> None:
        del message

    def warning(self, message: str) -> None:
        del message

    def error(self, message: str) -> None:
        del message
