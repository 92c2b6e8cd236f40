from __future__ import annotations

import logging

import numpy as np

from .. import config
from ..grid import Neighborhood, VoxelGrid
from ..linalg import Vec3
from .network import Network
from .path import PathQuery

logger = logging.getLogger(__name__)

_HORIZONTAL = (0, 2)


def _offset(axis: int, ahead: int, dy: int = 0, side: int = 0) -> tuple[int, int, int]:
    out = [0, dy, 0]
    out[axis] = ahead
    out[2 if axis == 0 else 0] = side
    return (out[0], out[1], out[2])


def encode_inputs(query: PathQuery, half_extent: float, edge: float) -> np.ndarray:
    """Map a query into the network's [0, 1] input domain."""
    inv = 1.0 / half_extent
    d = query.destination * inv
    s = query.position * inv
    x = np.empty(config.NAV_INPUTS, dtype=np.float32)
    x[:6] = 0.5 * (1.0 + np.array([d.x, d.y, d.z, s.x, s.y, s.z], dtype=np.float32))
    x[6] = min(max(query.remain / edge, 0.0), 1.0)
    return x


def decode_output(output: np.ndarray, step_size: float = config.NAV_STEP_SIZE) -> Vec3:
    x, y, z = (np.asarray(output, dtype=np.float64) * 2.0 - 1.0) * step_size
    return Vec3(x, y, z)


def avoid_collisions(learned: Vec3, desired: Vec3, hood: Neighborhood) -> Vec3:
    """Deterministic overlay applied on top of the learned step."""
    change = learned.clone()
    blocked = {0: False, 2: False}
    for axis in _HORIZONTAL:
        if desired[axis] == 0.0:
            continue
        ahead = 1 if desired[axis] > 0.0 else -1
        blocked[axis] = any(hood.solid(*_offset(axis, ahead, side=s)) for s in (-1, 0, 1))
        if blocked[axis]:
            change = change.with_axis(axis, 0.0)

    # Boxed in on both sides: slide along the axis we care least about.
    if blocked[0] and blocked[2]:
        axis = 0 if abs(desired.x) <= abs(desired.z) else 2
        change = change.with_axis(axis, learned[axis])

    moving = {axis: abs(desired[axis]) > config.NAV_MOVING_THRESHOLD for axis in _HORIZONTAL}
    if not (moving[0] and moving[2]):
        for axis in _HORIZONTAL:
            if not moving[axis]:
                continue
            ahead = 1 if desired[axis] > 0.0 else -1
            if hood.solid(*_offset(axis, ahead)) and not hood.solid(*_offset(axis, ahead, dy=1)):
                change = change.with_axis(1, 1.0)
                break
    return change


def steer(network: Network, grid: VoxelGrid, query: PathQuery) -> Vec3:
    """Unit step direction for one agent; zero once the goal is reached."""
    if query.remain < config.NAV_GOAL_RADIUS:
        return Vec3()
    hood = grid.neighborhood(query.position)
    inputs = encode_inputs(query, grid.half_extent, grid.grid_size)
    learned = decode_output(network.calculate(inputs))
    return avoid_collisions(learned, query.direction, hood).norm()


class NavController:
    """Inference-only steering over a fixed parameter vector."""

    def __init__(self, network: Network | None = None) -> None:
        self.network = network if network is not None else Network.zeros()

    @classmethod
    def from_params(cls, params) -> "NavController":
        return cls(Network(params))

    @property
    def params(self) -> np.ndarray:
        return self.network.params

    def steer(self, grid: VoxelGrid, query: PathQuery) -> Vec3:
        return steer(self.network, grid, query)

    def serialize(self) -> bytes:
        return self.network.serialize()

    def deserialize(self, data: bytes) -> None:
        self.network.load(data)
        logger.info("loaded %d steering weights", self.network.params.shape[0])
