"""Occupancy grid snapshots and the single-owner caches that hold them."""

from __future__ import annotations

from dataclasses import dataclass, field
import math

import numpy as np

from .geometry import Pose2D

CELL_UNKNOWN = -1
CELL_FREE = 0
CELL_OCCUPIED = 1


@dataclass(frozen=True)
class OccupancyMap:
    """Immutable grid snapshot tagged with the frame it is expressed in.

    ``cells`` is stored row-major (``height x width``) and is made read-only on
    construction, so a snapshot handed to a planner can never change under it.
    Negative cells are unknown, cells below ``free_threshold`` are free and
    cells at or above ``occupied_threshold`` are occupied.
    """

    cells: np.ndarray
    frame_id: str
    resolution: float = 0.05
    origin: Pose2D = field(default_factory=lambda: Pose2D(0.0, 0.0, 0.0))
    free_threshold: int = 25
    occupied_threshold: int = 65

    def __post_init__(self) -> None:
        cells = np.array(self.cells, dtype=np.int16, copy=True)
        if cells.ndim != 2:
            raise ValueError(f"occupancy cells must be 2-D, got shape {cells.shape}")
        if not math.isfinite(self.resolution) or self.resolution <= 0.0:
            raise ValueError("resolution must be a positive finite value")
        if self.occupied_threshold < self.free_threshold:
            raise ValueError("occupied_threshold must be >= free_threshold")
        cells.setflags(write=False)
        object.__setattr__(self, "cells", cells)
        object.__setattr__(self, "frame_id", str(self.frame_id).strip())

    @classmethod
    def from_flat(
        cls,
        data,
        *,
        width: int,
        height: int,
        frame_id: str,
        resolution: float,
        origin: Pose2D | None = None,
        free_threshold: int = 25,
        occupied_threshold: int = 65,
    ) -> "OccupancyMap":
        flat = np.asarray(data, dtype=np.int16)
        if flat.size != int(width) * int(height):
            raise ValueError(
                f"expected {int(width) * int(height)} cells for {width}x{height}, "
                f"got {flat.size}"
            )
        return cls(
            cells=flat.reshape((int(height), int(width))),
            frame_id=frame_id,
            resolution=float(resolution),
            origin=origin or Pose2D(0.0, 0.0, 0.0),
            free_threshold=int(free_threshold),
            occupied_threshold=int(occupied_threshold),
        )

    @property
    def width(self) -> int:
        return int(self.cells.shape[1])

    @property
    def height(self) -> int:
        return int(self.cells.shape[0])

    def classify(self) -> np.ndarray:
        """Return a grid of CELL_FREE / CELL_OCCUPIED / CELL_UNKNOWN labels."""
        labels = np.full(self.cells.shape, CELL_UNKNOWN, dtype=np.int8)
        known = self.cells >= 0
        labels[known & (self.cells < self.free_threshold)] = CELL_FREE
        labels[known & (self.cells >= self.occupied_threshold)] = CELL_OCCUPIED
        return labels

    def world_to_cell(self, x: float, y: float) -> tuple[int, int] | None:
        dx = x - self.origin.x
        dy = y - self.origin.y
        cos_yaw = math.cos(self.origin.heading)
        sin_yaw = math.sin(self.origin.heading)
        local_x = cos_yaw * dx + sin_yaw * dy
        local_y = -sin_yaw * dx + cos_yaw * dy
        col = int(math.floor(local_x / self.resolution))
        row = int(math.floor(local_y / self.resolution))
        if col < 0 or row < 0 or col >= self.width or row >= self.height:
            return None
        return (row, col)

    def label_at(self, x: float, y: float) -> int:
        cell = self.world_to_cell(x, y)
        if cell is None:
            return CELL_UNKNOWN
        value = int(self.cells[cell])
        if value < 0:
            return CELL_UNKNOWN
        if value < self.free_threshold:
            return CELL_FREE
        if value >= self.occupied_threshold:
            return CELL_OCCUPIED
        return CELL_UNKNOWN


class MapCache:
    """Holds the latest snapshot for one map source.

    Refreshing replaces the held snapshot wholesale; snapshots themselves are
    immutable, so a reader keeps a consistent view for as long as it holds
    a reference.
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._snapshot: OccupancyMap | None = None
        self._revision = 0

    @property
    def name(self) -> str:
        return self._name

    @property
    def revision(self) -> int:
        return self._revision

    @property
    def frame_id(self) -> str | None:
        if self._snapshot is None:
            return None
        return self._snapshot.frame_id

    def replace(self, snapshot: OccupancyMap) -> None:
        self._snapshot = snapshot
        self._revision += 1

    def snapshot(self) -> OccupancyMap | None:
        return self._snapshot
