from .vec3 import Vec3


class Box:
    """Axis-aligned box given by its min and max corners."""

    __slots__ = ("min", "max")

    def __init__(self, lo, hi):
        self.min = Vec3.of(lo)
        self.max = Vec3.of(hi)

    @classmethod
    def around(cls, center, half_extent):
        c = Vec3.of(center)
        h = Vec3.of(half_extent)
        return cls(c - h, c + h)

    @classmethod
    def unit(cls, center):
        """The one-voxel box centred at `center`."""
        return cls.around(center, Vec3.splat(0.5))

    def center(self):
        return (self.min + self.max) * 0.5

    def half_extent(self):
        return (self.max - self.min) * 0.5

    def intersects(self, other):
        return (
            self.min.x < other.max.x
            and self.max.x > other.min.x
            and self.min.y < other.max.y
            and self.max.y > other.min.y
            and self.min.z < other.max.z
            and self.max.z > other.min.z
        )

    def contains(self, point):
        return (
            self.min.x <= point.x < self.max.x
            and self.min.y <= point.y < self.max.y
            and self.min.z <= point.z < self.max.z
        )

    def __repr__(self):
        return f"Box({self.min!r}, {self.max!r})"
