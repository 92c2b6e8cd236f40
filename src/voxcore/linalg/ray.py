from .vec3 import Vec3


class Ray:
    """Half-line from `origin` toward `target`; direction is unit length."""

    __slots__ = ("origin", "direction")

    def __init__(self, origin, target):
        self.origin = Vec3.of(origin)
        self.direction = (Vec3.of(target) - self.origin).norm()

    @classmethod
    def along(cls, origin, direction):
        o = Vec3.of(origin)
        return cls(o, o + Vec3.of(direction))

    def at(self, t):
        return self.origin + self.direction * t

    def __repr__(self):
        return f"Ray({self.origin!r} -> {self.direction!r})"
