from .errors import (
    GridConfigError,
    MaterialRangeError,
    NeighborhoodError,
    OutOfGridError,
    StaleHandleError,
    VoxcoreError,
    WeightFormatError,
)
from .grid import StreamingWindow, VoxelGrid
from .physics import BodyHandle, BodyShape, PhysicsWorld
from .sim import WorldSimulation

__all__ = [
    "VoxelGrid",
    "StreamingWindow",
    "PhysicsWorld",
    "BodyHandle",
    "BodyShape",
    "WorldSimulation",
    "VoxcoreError",
    "GridConfigError",
    "MaterialRangeError",
    "NeighborhoodError",
    "OutOfGridError",
    "StaleHandleError",
    "WeightFormatError",
]
