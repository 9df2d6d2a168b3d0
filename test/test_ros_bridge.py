"""Tests for the ROS message conversions and collaborator adapters."""

from pathlib import Path
from types import SimpleNamespace
import math
import sys

import pytest

pytest.importorskip("rclpy")
pytest.importorskip("tf2_ros")
pytest.importorskip("nav2_msgs")

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from action_msgs.msg import GoalStatus
from builtin_interfaces.msg import Time as TimeMsg
from geometry_msgs.msg import TransformStamped
from nav_msgs.msg import OccupancyGrid
import tf2_ros

from nav_supervisor import ros_bridge
from nav_supervisor.errors import TransformFailure
from nav_supervisor.geometry import Point2D, Pose2D, quaternion_from_yaw
from nav_supervisor.interfaces import ExecutionOutcome, ExecutionParams


class _Future:
    def __init__(self) -> None:
        self._result = None
        self._done = False
        self._callbacks = []

    def result(self):
        return self._result

    def add_done_callback(self, callback) -> None:
        if self._done:
            callback(self)
        else:
            self._callbacks.append(callback)

    def set_result(self, value) -> None:
        self._result = value
        self._done = True
        for callback in self._callbacks:
            callback(self)


class _FakeGoalHandle:
    def __init__(self, accepted: bool = True) -> None:
        self.accepted = accepted
        self.cancel_requests = 0
        self.result_future = _Future()

    def get_result_async(self):
        return self.result_future

    def cancel_goal_async(self):
        self.cancel_requests += 1
        return _Future()


class _FakeActionClient:
    instances: list["_FakeActionClient"] = []

    def __init__(self, node, action_type, action_name, callback_group=None) -> None:
        self.action_name = action_name
        self.callback_group = callback_group
        self.server_ready = True
        self.goals = []
        self.goal_futures = []
        _FakeActionClient.instances.append(self)

    def wait_for_server(self, timeout_sec=None) -> bool:
        return self.server_ready

    def send_goal_async(self, goal):
        future = _Future()
        self.goals.append(goal)
        self.goal_futures.append(future)
        return future


class _RecordingPublisher:
    def __init__(self, topic: str) -> None:
        self.topic = topic
        self.messages = []

    def publish(self, message) -> None:
        self.messages.append(message)


class _FakeNode:
    def __init__(self) -> None:
        self.publishers: dict[str, _RecordingPublisher] = {}

    def create_publisher(self, msg_type, topic, qos):
        publisher = _RecordingPublisher(topic)
        self.publishers[topic] = publisher
        return publisher

    def get_clock(self):
        return SimpleNamespace(now=lambda: SimpleNamespace(to_msg=lambda: TimeMsg(sec=7)))


def _stamped(x: float, y: float, yaw: float) -> TransformStamped:
    stamped = TransformStamped()
    stamped.transform.translation.x = x
    stamped.transform.translation.y = y
    qx, qy, qz, qw = quaternion_from_yaw(yaw)
    stamped.transform.rotation.x = qx
    stamped.transform.rotation.y = qy
    stamped.transform.rotation.z = qz
    stamped.transform.rotation.w = qw
    return stamped


@pytest.fixture
def executor_client(monkeypatch):
    _FakeActionClient.instances.clear()
    monkeypatch.setattr(ros_bridge, "ActionClient", _FakeActionClient)
    node = _FakeNode()
    client = ros_bridge.FollowPathExecutorClient(
        node,
        action_name="follow_path",
        speed_limit_topic="speed_limit",
        controller_id="FollowPath",
        goal_checker_id="precise_goal_checker",
    )
    return client, _FakeActionClient.instances[-1], node


def test_pose_message_conversion_keeps_heading() -> None:
    message = ros_bridge.pose2d_to_msg(Pose2D(1.5, -2.0, 0.75))

    assert message.position.x == 1.5
    assert message.position.y == -2.0
    assert message.position.z == 0.0
    restored = ros_bridge.pose2d_from_msg(message)
    assert restored.x == 1.5
    assert restored.heading == pytest.approx(0.75)


def test_path_message_carries_frame_and_stamp_on_every_pose() -> None:
    stamp = TimeMsg(sec=3, nanosec=5)
    message = ros_bridge.path_to_msg([Pose2D(0.0, 0.0), Pose2D(1.0, 1.0)], "map", stamp)

    assert message.header.frame_id == "map"
    assert len(message.poses) == 2
    assert all(pose.header.frame_id == "map" for pose in message.poses)
    assert message.poses[1].header.stamp.sec == 3
    assert message.poses[1].pose.position.x == 1.0


def test_empty_path_message_has_no_poses() -> None:
    message = ros_bridge.path_to_msg((), "map", TimeMsg())

    assert message.poses == []
    assert message.header.frame_id == "map"


def test_global_path_points_become_zero_heading_poses() -> None:
    message = ros_bridge.points_to_path_msg([Point2D(2.0, 3.0)], "map", TimeMsg())

    assert message.poses[0].pose.position.y == 3.0
    assert message.poses[0].pose.orientation.w == 1.0


def test_occupancy_grid_message_becomes_snapshot() -> None:
    message = OccupancyGrid()
    message.header.frame_id = "map"
    message.info.width = 2
    message.info.height = 2
    message.info.resolution = 0.1
    message.info.origin.position.x = -1.0
    message.data = [0, 100, -1, 50]

    grid = ros_bridge.occupancy_map_from_msg(message, free_threshold=25, occupied_threshold=65)

    assert grid.frame_id == "map"
    assert grid.cells.tolist() == [[0, 100], [-1, 50]]
    assert grid.origin.x == -1.0
    assert grid.resolution == pytest.approx(0.1)
    assert grid.occupied_threshold == 65


def test_occupancy_grid_with_wrong_cell_count_is_rejected() -> None:
    message = OccupancyGrid()
    message.info.width = 3
    message.info.height = 3
    message.info.resolution = 0.1
    message.data = [0, 0]

    with pytest.raises(ValueError):
        ros_bridge.occupancy_map_from_msg(message, free_threshold=25, occupied_threshold=65)


def test_tf_provider_looks_up_base_frame_in_requested_frame() -> None:
    lookups = []

    def _lookup(target, source, time, timeout):
        lookups.append((target, source))
        return _stamped(2.0, 3.0, 0.5)

    provider = ros_bridge.TfTransformProvider(
        None, base_frame="/base_link", buffer=SimpleNamespace(lookup_transform=_lookup)
    )

    pose = provider.current_pose("/map")

    assert lookups == [("map", "base_link")]
    assert (pose.x, pose.y) == (2.0, 3.0)
    assert pose.heading == pytest.approx(0.5)


def test_tf_provider_transform_composes_frame_offset() -> None:
    def _lookup(target, source, time, timeout):
        assert (target, source) == ("map", "odom")
        return _stamped(1.0, 0.0, math.pi / 2.0)

    provider = ros_bridge.TfTransformProvider(
        None, buffer=SimpleNamespace(lookup_transform=_lookup)
    )

    pose = provider.transform(Pose2D(1.0, 0.0, 0.0), "odom", "map")

    assert pose.x == pytest.approx(1.0)
    assert pose.y == pytest.approx(1.0)
    assert pose.heading == pytest.approx(math.pi / 2.0)


def test_tf_provider_wraps_lookup_errors() -> None:
    def _lookup(target, source, time, timeout):
        raise tf2_ros.LookupException("frame does not exist")

    provider = ros_bridge.TfTransformProvider(
        None, buffer=SimpleNamespace(lookup_transform=_lookup)
    )

    with pytest.raises(TransformFailure, match="no transform from 'odom' to 'map'"):
        provider.transform(Pose2D(0.0, 0.0), "odom", "map")


def test_executor_wait_ready_uses_action_server(executor_client) -> None:
    client, action_client, _ = executor_client

    assert client.wait_ready(1.0) is True
    action_client.server_ready = False
    assert client.wait_ready(1.0) is False


def test_send_path_publishes_speed_limit_and_follow_path_goal(executor_client) -> None:
    client, action_client, node = executor_client

    client.send_path(
        (Pose2D(0.0, 0.0), Pose2D(1.0, 0.0)),
        ExecutionParams(target_speed=0.7, position_tolerance=0.2),
        lambda outcome: None,
        frame_id="map",
    )

    speed_limits = node.publishers["speed_limit"].messages
    assert len(speed_limits) == 1
    assert speed_limits[0].speed_limit == pytest.approx(0.7)
    assert speed_limits[0].percentage is False
    goal = action_client.goals[0]
    assert goal.path.header.frame_id == "map"
    assert len(goal.path.poses) == 2
    assert goal.controller_id == "FollowPath"
    assert goal.goal_checker_id == "precise_goal_checker"


def test_accepted_goal_reports_terminal_status(executor_client) -> None:
    client, action_client, _ = executor_client
    outcomes = []
    client.send_path((Pose2D(0.0, 0.0),), ExecutionParams(), outcomes.append, frame_id="map")
    handle = _FakeGoalHandle()

    action_client.goal_futures[0].set_result(handle)
    handle.result_future.set_result(
        SimpleNamespace(
            status=GoalStatus.STATUS_ABORTED, result=SimpleNamespace(error_msg="blocked")
        )
    )

    assert outcomes == [ExecutionOutcome(ExecutionOutcome.ABORTED, "blocked")]


def test_rejected_goal_is_reported(executor_client) -> None:
    client, action_client, _ = executor_client
    outcomes = []
    client.send_path((Pose2D(0.0, 0.0),), ExecutionParams(), outcomes.append, frame_id="map")

    action_client.goal_futures[0].set_result(_FakeGoalHandle(accepted=False))

    assert [outcome.status for outcome in outcomes] == [ExecutionOutcome.REJECTED]


def test_cancel_all_cancels_running_goals(executor_client) -> None:
    client, action_client, _ = executor_client
    client.send_path((Pose2D(0.0, 0.0),), ExecutionParams(), lambda o: None, frame_id="map")
    handle = _FakeGoalHandle()
    action_client.goal_futures[0].set_result(handle)

    client.cancel_all()
    client.cancel_all()

    assert handle.cancel_requests == 1


def test_goal_accepted_after_cancel_all_is_cancelled(executor_client) -> None:
    client, action_client, _ = executor_client
    outcomes = []
    client.send_path((Pose2D(0.0, 0.0),), ExecutionParams(), outcomes.append, frame_id="map")
    client.cancel_all()
    handle = _FakeGoalHandle()

    action_client.goal_futures[0].set_result(handle)

    assert handle.cancel_requests == 1
    assert outcomes == []


def test_topic_listener_publishes_paths_and_waypoints() -> None:
    node = _FakeNode()
    listener = ros_bridge.TopicListener(
        node,
        path_topic="/path",
        waypoints_topic="waypoints",
        global_path_topic="global_path",
        frame_fn=lambda: "map",
    )

    listener.on_path_published((Pose2D(1.0, 0.0),), "map")
    listener.on_empty_path_published("map")
    listener.on_waypoints_ready([Pose2D(3.0, 3.0), Pose2D(4.0, 4.0)])
    listener.on_global_path_ready([Point2D(0.0, 0.0)], "map")

    paths = node.publishers["/path"].messages
    assert [len(message.poses) for message in paths] == [1, 0]
    waypoints = node.publishers["waypoints"].messages[0]
    assert waypoints.header.frame_id == "map"
    assert len(waypoints.poses) == 2
    assert len(node.publishers["global_path"].messages[0].poses) == 1
