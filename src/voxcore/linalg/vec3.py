import math


class Vec3:
    __slots__ = ("x", "y", "z")

    def __init__(self, x=0.0, y=0.0, z=0.0):
        self.x, self.y, self.z = float(x), float(y), float(z)

    @classmethod
    def splat(cls, v):
        return cls(v, v, v)

    @classmethod
    def of(cls, seq):
        """Build from any 3-sequence (tuple, list, ndarray or Vec3)."""
        if isinstance(seq, Vec3):
            return seq.clone()
        x, y, z = seq
        return cls(x, y, z)

    def mag(self):
        return math.sqrt(self.x**2 + self.y**2 + self.z**2)

    def mag2(self):
        return self.x**2 + self.y**2 + self.z**2

    def norm(self):
        """Unit vector, or the zero vector when the length is zero."""
        return self.norm_safe(Vec3())

    def norm_safe(self, default, eps=1e-12):
        mag = self.mag()
        if mag > eps:
            return Vec3(
                self.x / mag,
                self.y / mag,
                self.z / mag,
            )
        return default.clone()

    def __add__(self, other):
        return Vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other):
        return Vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __neg__(self):
        return Vec3(-self.x, -self.y, -self.z)

    def __mul__(self, other):
        if isinstance(other, Vec3):
            return Vec3(self.x * other.x, self.y * other.y, self.z * other.z)
        return Vec3(self.x * other, self.y * other, self.z * other)

    def __rmul__(self, other):
        return self.__mul__(other)

    def __truediv__(self, other):
        if isinstance(other, Vec3):
            return Vec3(self.x / other.x, self.y / other.y, self.z / other.z)
        return Vec3(self.x / other, self.y / other, self.z / other)

    def __iter__(self):
        yield self.x
        yield self.y
        yield self.z

    def __getitem__(self, axis):
        return (self.x, self.y, self.z)[axis]

    def __eq__(self, other):
        if not isinstance(other, Vec3):
            return NotImplemented
        return self.x == other.x and self.y == other.y and self.z == other.z

    __hash__ = None

    def dot(self, vec3):
        return self.x * vec3.x + self.y * vec3.y + self.z * vec3.z

    def cross(self, vec3):
        return Vec3(
            self.y * vec3.z - self.z * vec3.y,
            self.z * vec3.x - self.x * vec3.z,
            self.x * vec3.y - self.y * vec3.x,
        )

    def __repr__(self):
        return (
            self.x,
            self.y,
            self.z,
        ).__repr__()

    def clone(self):
        return Vec3(
            self.x,
            self.y,
            self.z,
        )

    def clamp(self, low, high):
        return Vec3(
            min(max(self.x, low), high),
            min(max(self.y, low), high),
            min(max(self.z, low), high),
        )

    def with_axis(self, axis, value):
        out = [self.x, self.y, self.z]
        out[axis] = value
        return Vec3(*out)

    def xz(self):
        """Horizontal-plane projection (y zeroed)."""
        return Vec3(self.x, 0.0, self.z)

    def to_tuple(self):
        return (self.x, self.y, self.z)

    @classmethod
    def random(cls, rng, low=0.0, high=1.0):
        x, y, z = rng.uniform(low, high, size=3)
        return cls(x, y, z)
