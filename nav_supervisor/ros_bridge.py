"""ROS 2 implementations of the supervisor's collaborator interfaces."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from functools import partial
import threading

from action_msgs.msg import GoalStatus
from geometry_msgs.msg import Pose, PoseArray, PoseStamped, Quaternion
from nav2_msgs.action import FollowPath
from nav2_msgs.msg import SpeedLimit
from nav_msgs.msg import OccupancyGrid
from nav_msgs.msg import Path as PathMsg
from rclpy.action import ActionClient
from rclpy.duration import Duration
from rclpy.node import Node
from rclpy.time import Time
import tf2_ros

from .errors import TransformFailure
from .geometry import Path, Point2D, Pose2D, compose, quaternion_from_yaw, yaw_from_quaternion
from .interfaces import DoneCallback, ExecutionOutcome, ExecutionParams
from .occupancy_map import OccupancyMap

_STATUS_NAMES = {
    GoalStatus.STATUS_SUCCEEDED: ExecutionOutcome.SUCCEEDED,
    GoalStatus.STATUS_CANCELED: ExecutionOutcome.CANCELED,
    GoalStatus.STATUS_ABORTED: ExecutionOutcome.ABORTED,
}


def pose2d_from_msg(pose: Pose) -> Pose2D:
    q = pose.orientation
    return Pose2D(
        x=float(pose.position.x),
        y=float(pose.position.y),
        heading=yaw_from_quaternion(q.x, q.y, q.z, q.w),
    )


def pose2d_to_msg(pose: Pose2D) -> Pose:
    qx, qy, qz, qw = quaternion_from_yaw(pose.heading)
    message = Pose()
    message.position.x = float(pose.x)
    message.position.y = float(pose.y)
    message.position.z = 0.0
    message.orientation = Quaternion(x=qx, y=qy, z=qz, w=qw)
    return message


def path_to_msg(path: Sequence[Pose2D], frame_id: str, stamp) -> PathMsg:
    message = PathMsg()
    message.header.frame_id = frame_id
    message.header.stamp = stamp
    for pose in path:
        stamped = PoseStamped()
        stamped.header = message.header
        stamped.pose = pose2d_to_msg(pose)
        message.poses.append(stamped)
    return message


def points_to_path_msg(points: Sequence[Point2D], frame_id: str, stamp) -> PathMsg:
    return path_to_msg([Pose2D(p.x, p.y, 0.0) for p in points], frame_id, stamp)


def pose_array_msg(poses: Sequence[Pose2D], frame_id: str, stamp) -> PoseArray:
    message = PoseArray()
    message.header.frame_id = frame_id
    message.header.stamp = stamp
    message.poses = [pose2d_to_msg(pose) for pose in poses]
    return message


def occupancy_map_from_msg(
    message: OccupancyGrid,
    *,
    free_threshold: int,
    occupied_threshold: int,
) -> OccupancyMap:
    info = message.info
    return OccupancyMap.from_flat(
        message.data,
        width=int(info.width),
        height=int(info.height),
        frame_id=message.header.frame_id,
        resolution=float(info.resolution),
        origin=pose2d_from_msg(info.origin),
        free_threshold=free_threshold,
        occupied_threshold=occupied_threshold,
    )


class TfTransformProvider:
    """Pose lookups against a tf2 buffer fed by a TransformListener."""

    def __init__(
        self,
        node: Node,
        *,
        base_frame: str = "base_link",
        timeout_sec: float = 0.1,
        buffer: tf2_ros.Buffer | None = None,
    ) -> None:
        self._base_frame = self._clean(base_frame)
        self._timeout = Duration(seconds=max(0.0, float(timeout_sec)))
        self._buffer = buffer or tf2_ros.Buffer()
        self._tf_listener = (
            tf2_ros.TransformListener(self._buffer, node) if buffer is None else None
        )

    def current_pose(self, frame_id: str) -> Pose2D:
        return self._lookup(frame_id, self._base_frame)

    def transform(self, pose: Pose2D, from_frame: str, to_frame: str) -> Pose2D:
        return compose(self._lookup(to_frame, from_frame), pose)

    def _lookup(self, target_frame: str, source_frame: str) -> Pose2D:
        target = self._clean(target_frame)
        source = self._clean(source_frame)
        try:
            stamped = self._buffer.lookup_transform(target, source, Time(), self._timeout)
        except tf2_ros.TransformException as error:
            raise TransformFailure(
                f"no transform from '{source or '<empty>'}' to '{target or '<empty>'}': {error}"
            ) from error
        translation = stamped.transform.translation
        rotation = stamped.transform.rotation
        return Pose2D(
            x=float(translation.x),
            y=float(translation.y),
            heading=yaw_from_quaternion(rotation.x, rotation.y, rotation.z, rotation.w),
        )

    @staticmethod
    def _clean(frame_id: str) -> str:
        return str(frame_id).strip().lstrip("/")


class FollowPathExecutorClient:
    """Path executor reached through a nav2 ``FollowPath`` action server.

    The target speed is applied by publishing a ``SpeedLimit`` ahead of every
    goal. Position tolerance is owned by the controller server's goal checker
    selected through ``goal_checker_id``.
    """

    def __init__(
        self,
        node: Node,
        *,
        action_name: str = "follow_path",
        speed_limit_topic: str = "speed_limit",
        controller_id: str = "",
        goal_checker_id: str = "",
        callback_group=None,
    ) -> None:
        self._node = node
        self._controller_id = controller_id
        self._goal_checker_id = goal_checker_id
        self._client = ActionClient(
            node, FollowPath, action_name, callback_group=callback_group
        )
        self._speed_limit_pub = node.create_publisher(SpeedLimit, speed_limit_topic, 10)
        self._lock = threading.Lock()
        self._goal_handles: list = []
        self._cancel_epoch = 0

    def wait_ready(self, timeout_sec: float) -> bool:
        return bool(self._client.wait_for_server(timeout_sec=float(timeout_sec)))

    def send_path(
        self,
        path: Path,
        params: ExecutionParams,
        on_done: DoneCallback,
        *,
        frame_id: str,
    ) -> None:
        stamp = self._node.get_clock().now().to_msg()
        speed_limit = SpeedLimit()
        speed_limit.header.stamp = stamp
        speed_limit.percentage = False
        speed_limit.speed_limit = float(params.target_speed)
        self._speed_limit_pub.publish(speed_limit)

        goal = FollowPath.Goal()
        goal.path = path_to_msg(path, frame_id, stamp)
        goal.controller_id = self._controller_id
        goal.goal_checker_id = self._goal_checker_id

        with self._lock:
            epoch = self._cancel_epoch
        future = self._client.send_goal_async(goal)
        future.add_done_callback(partial(self._handle_goal_response, epoch, on_done))

    def cancel_all(self) -> None:
        with self._lock:
            self._cancel_epoch += 1
            handles = self._goal_handles
            self._goal_handles = []
        for handle in handles:
            handle.cancel_goal_async()

    def _handle_goal_response(self, epoch: int, on_done: DoneCallback, future) -> None:
        goal_handle = future.result()
        if goal_handle is None or not goal_handle.accepted:
            on_done(ExecutionOutcome(ExecutionOutcome.REJECTED, "goal rejected by executor"))
            return

        with self._lock:
            cancelled = epoch != self._cancel_epoch
            if not cancelled:
                self._goal_handles.append(goal_handle)
        if cancelled:
            # cancel_all() ran while this goal was still in flight.
            goal_handle.cancel_goal_async()
            return

        result_future = goal_handle.get_result_async()
        result_future.add_done_callback(
            partial(self._handle_result, goal_handle, on_done)
        )

    def _handle_result(self, goal_handle, on_done: DoneCallback, future) -> None:
        with self._lock:
            if goal_handle in self._goal_handles:
                self._goal_handles.remove(goal_handle)

        response = future.result()
        if response is None:
            on_done(ExecutionOutcome(ExecutionOutcome.UNKNOWN, "no result received"))
            return
        detail = str(getattr(response.result, "error_msg", "") or "")
        on_done(
            ExecutionOutcome(
                _STATUS_NAMES.get(response.status, ExecutionOutcome.UNKNOWN), detail
            )
        )


class TopicListener:
    """Publishes supervisor notifications as plain ROS messages."""

    def __init__(
        self,
        node: Node,
        *,
        path_topic: str,
        waypoints_topic: str,
        global_path_topic: str,
        frame_fn: Callable[[], str],
    ) -> None:
        self._node = node
        self._frame_fn = frame_fn
        self._path_pub = node.create_publisher(PathMsg, path_topic, 5)
        self._waypoints_pub = node.create_publisher(PoseArray, waypoints_topic, 5)
        self._global_path_pub = node.create_publisher(PathMsg, global_path_topic, 5)

    def on_path_published(self, path: Path, frame_id: str) -> None:
        self._path_pub.publish(path_to_msg(path, frame_id, self._stamp()))

    def on_empty_path_published(self, frame_id: str) -> None:
        self._path_pub.publish(path_to_msg((), frame_id, self._stamp()))

    def on_waypoints_ready(self, waypoints: Sequence[Pose2D]) -> None:
        self._waypoints_pub.publish(
            pose_array_msg(waypoints, self._frame_fn(), self._stamp())
        )

    def on_global_path_ready(self, points: Sequence[Point2D], frame_id: str) -> None:
        self._global_path_pub.publish(points_to_path_msg(points, frame_id, self._stamp()))

    def _stamp(self):
        return self._node.get_clock().now().to_msg()
