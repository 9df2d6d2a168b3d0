"""Planar pose primitives shared by the supervisor core and the ROS bridge."""

from __future__ import annotations

from dataclasses import dataclass
import math


@dataclass(frozen=True)
class Point2D:
    x: float
    y: float


@dataclass(frozen=True)
class Pose2D:
    x: float
    y: float
    heading: float = 0.0

    def point(self) -> Point2D:
        return Point2D(self.x, self.y)


Path = tuple[Pose2D, ...]


def wrap_angle(a: float) -> float:
    while a > math.pi:
        a -= 2.0 * math.pi
    while a < -math.pi:
        a += 2.0 * math.pi
    return a


def yaw_from_quaternion(x: float, y: float, z: float, w: float) -> float:
    siny = 2.0 * (w * z + x * y)
    cosy = 1.0 - 2.0 * (y * y + z * z)
    return math.atan2(siny, cosy)


def quaternion_from_yaw(yaw: float) -> tuple[float, float, float, float]:
    """Return the (x, y, z, w) quaternion for a rotation about +z."""
    half = 0.5 * yaw
    return (0.0, 0.0, math.sin(half), math.cos(half))


def compose(frame: Pose2D, pose: Pose2D) -> Pose2D:
    """Express ``pose`` (given relative to ``frame``) in the parent of ``frame``."""
    cos_yaw = math.cos(frame.heading)
    sin_yaw = math.sin(frame.heading)
    return Pose2D(
        x=frame.x + cos_yaw * pose.x - sin_yaw * pose.y,
        y=frame.y + sin_yaw * pose.x + cos_yaw * pose.y,
        heading=wrap_angle(frame.heading + pose.heading),
    )


def as_path(poses) -> Path:
    return tuple(
        pose if isinstance(pose, Pose2D) else Pose2D(*pose) for pose in poses
    )
