"""Launch file for the navigation mission supervisor.

Starts the supervisor node with the planner plugin and topic names passed as
launch arguments, ticking at the default 10 Hz control rate.
"""

from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument, LogInfo
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node


def generate_launch_description() -> LaunchDescription:
    """Generate the launch description for the supervisor.

    Returns:
        LaunchDescription: The supervisor node plus its launch arguments.
    """
    planning_engine = LaunchConfiguration("planning_engine")
    map_topic = LaunchConfiguration("map_topic")
    goal_topic = LaunchConfiguration("goal_topic")

    return LaunchDescription(
        [
            DeclareLaunchArgument(
                "planning_engine",
                description="Planner plugin as 'package.module:ClassName'.",
            ),
            DeclareLaunchArgument("map_topic", default_value="/map_inflated"),
            DeclareLaunchArgument("goal_topic", default_value="/goal"),
            Node(
                package="nav_supervisor",
                executable="supervisor",
                name="nav_supervisor",
                output="screen",
                parameters=[
                    {
                        "planning_engine": planning_engine,
                        "map_topic": map_topic,
                        "goal_topic": goal_topic,
                        "path_topic": "/path",
                        "control_rate_hz": 10.0,
                        "force_replan_interval_ms": 500.0,
                        "target_speed": 0.7,
                        "position_tolerance": 0.20,
                    }
                ],
            ),
            LogInfo(
                msg=(
                    "Supervisor running. Publish a PoseStamped on the goal topic "
                    "to start a mission; 'ros2 topic echo /path' shows the cleared "
                    "and active path segments."
                )
            ),
        ]
    )
