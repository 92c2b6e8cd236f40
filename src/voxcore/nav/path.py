from __future__ import annotations

from ..linalg import Vec3


class PathQuery:
    """Where an agent is, where it started and where it is heading.

    Built fresh every tick; nothing here outlives the frame.
    """

    __slots__ = ("destination", "position", "start", "direction", "remain", "travel")

    def __init__(self, position, destination) -> None:
        self.destination = Vec3.of(destination)
        self.position = Vec3.of(position)
        self.start = self.position.clone()
        self.direction = Vec3()
        self.remain = 0.0
        self.travel = 0.0
        self._update_direction()

    def _update_direction(self) -> None:
        delta = self.destination - self.position
        self.remain = delta.mag()
        self.direction = delta.norm_safe(Vec3(), eps=1e-4)

    def step(self, direction: Vec3, step_size: float) -> Vec3:
        return self.position + direction * step_size

    def update(self, position) -> None:
        self.position = Vec3.of(position)
        self._update_direction()
        self.travel = (self.position - self.start).mag()
