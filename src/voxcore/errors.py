from __future__ import annotations


class VoxcoreError(Exception):
    """Base class for every error raised by the simulation core."""


class GridConfigError(VoxcoreError, ValueError):
    """Grid and chunk sizes do not describe a valid world."""


class MaterialRangeError(VoxcoreError, ValueError):
    """A voxel edit used a material id outside [-1, 15]."""


class NeighborhoodError(VoxcoreError, RuntimeError):
    """Grid and navigation disagree on the neighborhood shape."""


class StaleHandleError(VoxcoreError, KeyError):
    """A body handle refers to a removed or never-issued body."""


class WeightFormatError(VoxcoreError, ValueError):
    """A weight stream does not match the network topology."""


class OutOfGridError(VoxcoreError, IndexError):
    """A column or point query fell outside the voxel grid."""
