from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import NamedTuple

from . import config
from .errors import StaleHandleError
from .grid import VoxelGrid
from .linalg import Box, Vec3

logger = logging.getLogger(__name__)


class BodyShape(Enum):
    PLAYER = "player"
    MOB = "mob"


class BodyHandle(NamedTuple):
    index: int
    generation: int


@dataclass
class RigidBody:
    position: Vec3
    half_extent: Vec3
    mass: float
    shape: BodyShape
    velocity: Vec3 = field(default_factory=Vec3)
    force: Vec3 = field(default_factory=Vec3)
    # Rotation is never integrated; the lock is recorded for collaborators.
    no_rotate: bool = False

    @property
    def inv_mass(self) -> float:
        return 1.0 / self.mass if self.mass > 0.0 else 0.0

    def box(self) -> Box:
        return Box.around(self.position, self.half_extent)


def substeps(dt: float, target: float = config.TARGET_SUBSTEP) -> tuple[int, float]:
    """Substep count and size for a frame of `dt` seconds.

    The count is floored at 1 so a non-positive frame never divides by zero.
    """
    steps = max(1, math.ceil(dt / target))
    return steps, max(0.0, dt / steps)


class PhysicsWorld:
    """Rigid bodies integrated against the voxel grid.

    Bodies are addressed by generational handles; removing one body never
    shifts the handles of the others.
    """

    def __init__(
        self,
        grid: VoxelGrid,
        gravity=config.GRAVITY,
        elasticity: float = config.ELASTICITY,
        target_substep: float = config.TARGET_SUBSTEP,
        base_damping: float = config.BASE_DAMPING,
        damping_per_step: float = config.DAMPING_PER_STEP,
        friction: float = config.FRICTION,
    ) -> None:
        self.grid = grid
        self.gravity = Vec3.of(gravity)
        self.elasticity = elasticity
        self.target_substep = target_substep
        self.base_damping = base_damping
        self.damping_per_step = damping_per_step
        self.friction = friction
        self._bodies: list[RigidBody | None] = []
        self._generations: list[int] = []
        self._free: list[int] = []

    # Body table ---------------------------------------------------------

    def add_body(self, box: Box, mass: float, shape: BodyShape = BodyShape.MOB) -> BodyHandle:
        body = RigidBody(box.center(), box.half_extent(), float(mass), shape)
        if self._free:
            index = self._free.pop()
            self._bodies[index] = body
        else:
            index = len(self._bodies)
            self._bodies.append(body)
            self._generations.append(0)
        return BodyHandle(index, self._generations[index])

    def remove_body(self, handle: BodyHandle) -> None:
        self.body(handle)
        self._bodies[handle.index] = None
        self._generations[handle.index] += 1
        self._free.append(handle.index)

    def body(self, handle: BodyHandle) -> RigidBody:
        index, generation = handle
        if not 0 <= index < len(self._bodies) or self._generations[index] != generation:
            raise StaleHandleError(handle)
        body = self._bodies[index]
        if body is None:
            raise StaleHandleError(handle)
        return body

    def handles(self) -> list[BodyHandle]:
        return [
            BodyHandle(i, self._generations[i]) for i, body in enumerate(self._bodies) if body is not None
        ]

    def __len__(self) -> int:
        return sum(1 for body in self._bodies if body is not None)

    def add_force(self, handle: BodyHandle, force) -> None:
        body = self.body(handle)
        body.force = body.force + Vec3.of(force)

    def set_velocity(self, handle: BodyHandle, velocity) -> None:
        self.body(handle).velocity = Vec3.of(velocity)

    def set_position(self, handle: BodyHandle, position) -> None:
        self.body(handle).position = Vec3.of(position)

    def lock_rotation(self, handle: BodyHandle) -> None:
        self.body(handle).no_rotate = True

    # Integration --------------------------------------------------------

    def collision_cells(self, body: RigidBody) -> list[Box]:
        if body.shape is BodyShape.PLAYER:
            return self.grid.create_player_collision_cells(body.position)
        return self.grid.create_mob_collision_cells(body.position)

    def solve_static(self, cells: list[Box], handle: BodyHandle, time_step: float, damping: float) -> bool:
        """Advance one body by `time_step` and push it out of `cells`.

        Returns True when the body touched any cell.
        """
        body = self.body(handle)
        v = body.velocity + (body.force * body.inv_mass + self.gravity) * time_step
        if damping > 0.0:
            v = v * (1.0 / (1.0 + damping * time_step))
        p = body.position + v * time_step

        touched = False
        for cell in cells:
            box = Box.around(p, body.half_extent)
            if not box.intersects(cell):
                continue
            # Resolve along the axis of least penetration.
            axis = 0
            push = math.inf
            for a in range(3):
                up = cell.max[a] - box.min[a]
                down = cell.min[a] - box.max[a]
                candidate = up if up < -down else down
                if abs(candidate) < abs(push):
                    axis, push = a, candidate
            p = p.with_axis(axis, p[axis] + push)
            if v[axis] * push < 0.0:
                v = v.with_axis(axis, -v[axis] * self.elasticity)
            touched = True

        body.position = p
        body.velocity = v
        body.force = Vec3()
        return touched

    def step(self, dt: float) -> dict[BodyHandle, Vec3]:
        """Integrate one frame; returns final positions of all non-player bodies."""
        steps, time_step = substeps(dt, self.target_substep)
        damping = max(0.0, self.base_damping - self.damping_per_step * steps)
        friction = -self.friction / steps

        live = [(h, self.body(h)) for h in self.handles()]
        for _ in range(steps):
            for handle, body in live:
                # Candidates move with the body, so they are rebuilt every substep.
                cells = self.collision_cells(body)
                body.force = body.force + body.velocity.xz() * (body.mass * friction)
                self.solve_static(cells, handle, time_step, damping)

        logger.debug("frame dt=%.5f: %d substeps of %.6f, damping %.3f", dt, steps, time_step, damping)
        return {h: b.position.clone() for h, b in live if b.shape is not BodyShape.PLAYER}
