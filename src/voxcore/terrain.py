from __future__ import annotations

import logging

import noise
import numpy as np

from . import config
from .errors import OutOfGridError
from .grid import VoxelGrid

logger = logging.getLogger(__name__)


def height_map(grid: VoxelGrid, seed: int = 0) -> np.ndarray:
    """Surface height (world y of the top solid voxel) for every (x, z) column."""
    g = grid.grid_size
    h = grid.half_extent
    heights = np.empty((g, g), dtype=np.int32)
    for ix in range(g):
        for iz in range(g):
            n = noise.pnoise2(
                (ix - h) * config.NOISE_SCALE,
                (iz - h) * config.NOISE_SCALE,
                octaves=config.NOISE_OCTAVES,
                persistence=config.NOISE_PERSISTENCE,
                lacunarity=config.NOISE_LACUNARITY,
                repeatx=1024,
                repeaty=1024,
                base=seed,
            )
            heights[ix, iz] = int(config.HEIGHT_BASE + n * config.HEIGHT_AMP)
    return np.clip(heights, -h, h - 1)


def build_volume(grid: VoxelGrid, heights: np.ndarray) -> np.ndarray:
    g = grid.grid_size
    ys = (np.arange(g) - grid.half_extent)[None, :, None]
    tops = heights[:, None, :]
    depth = tops - ys

    volume = np.full((g, g, g), config.BLOCK_AIR, dtype=np.int8)
    volume[depth >= 0] = config.BLOCK_STONE
    volume[(depth >= 1) & (depth < config.TOPSOIL_DEPTH)] = config.BLOCK_DIRT
    volume[depth == 0] = config.BLOCK_GRASS
    volume[:, 0, :] = config.BLOCK_BEDROCK
    return volume


def generate(grid: VoxelGrid, seed: int = 0) -> None:
    """Fill `grid` with a noise heightmap: bedrock floor, stone, dirt, grass."""
    heights = height_map(grid, seed)
    grid.replace_voxels(build_volume(grid, heights))
    logger.info(
        "terrain seed %d: heights %d..%d over %d columns",
        seed,
        int(heights.min()),
        int(heights.max()),
        heights.size,
    )


def surface_height(grid: VoxelGrid, x: float, z: float) -> float:
    """World y just above the highest solid voxel in the column at (x, z)."""
    if not grid.in_bounds((x, 0.0, z)):
        raise OutOfGridError(f"column ({x}, {z}) is outside the {grid.grid_size}^3 grid")
    voxels = grid.voxels()
    ix = int(np.floor(x)) + grid.half_extent
    iz = int(np.floor(z)) + grid.half_extent
    column = np.flatnonzero(voxels[ix, :, iz] != config.BLOCK_AIR)
    if column.size == 0:
        return float(-grid.half_extent)
    return float(column[-1] + 1 - grid.half_extent)
