"""ROS 2 node hosting the mission supervisor.

Wires the global map, local costmap and goal topics, the tf2 buffer and the
nav2 ``FollowPath`` action into a ``MissionSupervisor`` and drives its tick
from a fixed-rate timer. Every callback shares one mutually exclusive callback
group, so the supervisor and its planning engine only ever see one event at
a time.
"""

from __future__ import annotations

from typing import Any
import importlib

from geometry_msgs.msg import PoseStamped
from nav_msgs.msg import OccupancyGrid
from rcl_interfaces.msg import ParameterDescriptor
import rclpy
from rclpy.callback_groups import MutuallyExclusiveCallbackGroup
from rclpy.node import Node
from rclpy.parameter import Parameter
from rclpy.qos import DurabilityPolicy, QoSProfile, ReliabilityPolicy

from .interfaces import PlanningEngine
from .occupancy_map import MapCache
from .ros_bridge import (
    FollowPathExecutorClient,
    TfTransformProvider,
    TopicListener,
    occupancy_map_from_msg,
    pose2d_from_msg,
)
from .supervisor import MissionSupervisor, SupervisorConfig


def load_planning_engine(target: str) -> PlanningEngine:
    """Instantiate a planning engine named as ``package.module:ClassName``."""
    module_name, _, attribute = str(target).strip().partition(":")
    if not module_name or not attribute:
        raise ValueError(
            f"planning_engine must look like 'package.module:ClassName', got '{target}'"
        )
    module = importlib.import_module(module_name)
    factory = getattr(module, attribute)
    return factory()


class SupervisorNode(Node):
    """Navigation mission supervisor bound to ROS topics, tf2 and nav2."""

    def __init__(
        self,
        *,
        parameter_overrides: list[Parameter] | None = None,
        engine: PlanningEngine | None = None,
    ) -> None:
        super().__init__("nav_supervisor", parameter_overrides=parameter_overrides)

        self._map_topic = str(self.declare_parameter("map_topic", "/map_inflated").value)
        self._goal_topic = str(self.declare_parameter("goal_topic", "/goal").value)
        self._path_topic = str(self.declare_parameter("path_topic", "/path").value)
        self._local_map_topic = str(
            self.declare_parameter("local_map_topic", "/local_costmap/costmap").value
        )
        self._waypoints_topic = str(
            self.declare_parameter("waypoints_topic", "waypoints").value
        )
        self._global_path_topic = str(
            self.declare_parameter("global_path_topic", "global_path").value
        )
        self._speed_limit_topic = str(
            self.declare_parameter("speed_limit_topic", "speed_limit").value
        )
        self._follow_path_action = str(
            self.declare_parameter("follow_path_action", "follow_path").value
        )
        self._controller_id = str(self.declare_parameter("controller_id", "").value)
        self._goal_checker_id = str(self.declare_parameter("goal_checker_id", "").value)
        self._robot_base_frame = str(
            self.declare_parameter("robot_base_frame", "base_link").value
        )
        self._control_rate_hz = max(
            1e-3, float(self.declare_parameter("control_rate_hz", 10.0).value)
        )
        self._transform_timeout_sec = max(
            0.0, float(self.declare_parameter("transform_timeout_sec", 0.1).value)
        )
        self._global_map_free_threshold = int(
            self.declare_parameter("global_map_free_threshold", 25).value
        )
        self._global_map_occupied_threshold = int(
            self.declare_parameter("global_map_occupied_threshold", 65).value
        )
        self._local_map_free_threshold = int(
            self.declare_parameter("local_map_free_threshold", 50).value
        )
        self._local_map_occupied_threshold = int(
            self.declare_parameter("local_map_occupied_threshold", 98).value
        )
        engine_target = str(self.declare_parameter("planning_engine", "").value)
        config = self._load_supervisor_config()

        if engine is None:
            engine = load_planning_engine(engine_target)

        self._callback_group = MutuallyExclusiveCallbackGroup()
        self._local_map_source = MapCache("local_costmap")
        self._transforms = TfTransformProvider(
            self,
            base_frame=self._robot_base_frame,
            timeout_sec=self._transform_timeout_sec,
        )
        self._path_executor = FollowPathExecutorClient(
            self,
            action_name=self._follow_path_action,
            speed_limit_topic=self._speed_limit_topic,
            controller_id=self._controller_id,
            goal_checker_id=self._goal_checker_id,
            callback_group=self._callback_group,
        )
        self._topic_listener = TopicListener(
            self,
            path_topic=self._path_topic,
            waypoints_topic=self._waypoints_topic,
            global_path_topic=self._global_path_topic,
            frame_fn=self._global_frame,
        )
        self._supervisor = MissionSupervisor(
            engine,
            self._transforms,
            self._path_executor,
            local_map_source=self._local_map_source,
            config=config,
            listener=self._topic_listener,
            logger=self.get_logger(),
        )

        map_qos = QoSProfile(
            depth=1,
            durability=DurabilityPolicy.TRANSIENT_LOCAL,
            reliability=ReliabilityPolicy.RELIABLE,
        )
        self._map_subscription = self.create_subscription(
            OccupancyGrid,
            self._map_topic,
            self._handle_map,
            map_qos,
            callback_group=self._callback_group,
        )
        self._local_map_subscription = self.create_subscription(
            OccupancyGrid,
            self._local_map_topic,
            self._handle_local_map,
            1,
            callback_group=self._callback_group,
        )
        self._goal_subscription = self.create_subscription(
            PoseStamped,
            self._goal_topic,
            self._handle_goal,
            1,
            callback_group=self._callback_group,
        )
        self._tick_timer = self.create_timer(
            1.0 / self._control_rate_hz,
            self._handle_tick,
            callback_group=self._callback_group,
        )

        self.get_logger().info(
            f"Supervisor listening on '{self._map_topic}' and '{self._goal_topic}', "
            f"ticking at {self._control_rate_hz:.1f} Hz."
        )

    @property
    def supervisor(self) -> MissionSupervisor:
        return self._supervisor

    def _load_supervisor_config(self) -> SupervisorConfig:
        return SupervisorConfig(
            force_replan_interval_ms=float(
                self.declare_parameter("force_replan_interval_ms", 500.0).value
            ),
            executor_ready_timeout_sec=float(
                self.declare_parameter("executor_ready_timeout_sec", 1.0).value
            ),
            target_speed=float(self.declare_parameter("target_speed", 0.7).value),
            position_tolerance=float(
                self.declare_parameter(
                    "position_tolerance",
                    0.20,
                    ParameterDescriptor(
                        description=(
                            "Arrival tolerance in meters. Enforced by the controller "
                            "server goal checker named by goal_checker_id."
                        )
                    ),
                ).value
            ),
        )

    def _global_frame(self) -> str:
        return self._supervisor.mission_frame or self._supervisor.global_frame or ""

    def _handle_map(self, message: OccupancyGrid) -> None:
        try:
            occupancy_map = occupancy_map_from_msg(
                message,
                free_threshold=self._global_map_free_threshold,
                occupied_threshold=self._global_map_occupied_threshold,
            )
        except ValueError as error:
            self.get_logger().warning(f"Ignoring malformed global map: {error}")
            return
        self._supervisor.on_map_update(occupancy_map)

    def _handle_local_map(self, message: OccupancyGrid) -> None:
        try:
            occupancy_map = occupancy_map_from_msg(
                message,
                free_threshold=self._local_map_free_threshold,
                occupied_threshold=self._local_map_occupied_threshold,
            )
        except ValueError as error:
            self.get_logger().warning(f"Ignoring malformed local map: {error}")
            return
        self._local_map_source.replace(occupancy_map)

    def _handle_goal(self, message: PoseStamped) -> None:
        self.get_logger().debug(
            f"Got a new goal in frame '{message.header.frame_id or '<empty>'}'"
        )
        self._supervisor.on_goal_request(
            pose2d_from_msg(message.pose), message.header.frame_id
        )

    def _handle_tick(self) -> None:
        self._supervisor.on_tick()

    def destroy_node(self) -> None:
        self._supervisor.stop()
        super().destroy_node()


def main(args: Any = None) -> None:
    rclpy.init(args=args)
    node = SupervisorNode()
    try:
        rclpy.spin(node)
    except KeyboardInterrupt:
        node.get_logger().info("Supervisor shutdown requested.")
    finally:
        node.destroy_node()
        rclpy.shutdown()


if __name__ == "__main__":
    main()
