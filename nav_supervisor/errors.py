"""Failures the supervisor absorbs at its boundary.

Every failure leaves the mission IDLE; none is retried and none escapes
``MissionSupervisor.on_tick`` or ``MissionSupervisor.on_goal_request``.
"""

from __future__ import annotations


class SupervisorError(Exception):
    """Base class; ``log_level`` names the logger method used to report it."""

    log_level = "error"


class TransformFailure(SupervisorError):
    """A pose lookup or frame conversion is unavailable."""


class PlanningFailure(SupervisorError):
    """The planning engine raised while computing a path."""


class GoalUnreachable(SupervisorError):
    """The goal was accepted by the engine but no valid path exists."""

    log_level = "warning"


class ExecutorUnavailable(SupervisorError):
    """The path-execution endpoint did not become ready in time."""

    log_level = "warning"
