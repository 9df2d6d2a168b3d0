"""Navigation mission supervisor ROS 2 package.

Turns a stream of map updates and goal requests into a continuously
maintained path for a downstream path-execution action server, and absorbs
transform failures and planner errors by falling back to IDLE.

Modules:
    geometry: Planar pose primitives and frame composition helpers.
    occupancy_map: Immutable occupancy grid snapshots and their caches.
    interfaces: Collaborator protocols (planner, transforms, executor).
    errors: Failure taxonomy absorbed at the supervisor boundary.
    activation: Activate/deactivate protocol and mission state.
    supervisor: Per-tick update and goal adoption.
    ros_bridge: tf2, nav2 action and topic implementations of the interfaces.
    supervisor_node: rclpy node and console entry point.
"""

__version__ = "0.1.0"
