from .box import Box
from .ray import Ray
from .vec3 import Vec3

__all__ = ["Vec3", "Box", "Ray"]
