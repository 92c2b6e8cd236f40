from __future__ import annotations

import logging
import math
from numbers import Integral

import numpy as np

from . import config
from .errors import GridConfigError, MaterialRangeError, NeighborhoodError
from .linalg import Box, Ray, Vec3
from .mesh import CellMesh, make_cells

logger = logging.getLogger(__name__)

_FACE_NEIGHBORS = (
    (1, 0, 0),
    (-1, 0, 0),
    (0, 1, 0),
    (0, -1, 0),
    (0, 0, 1),
    (0, 0, -1),
)

# Full 3x3x3 neighborhood, x fastest, then y, then z.
NEIGHBOR_OFFSETS = tuple(
    (dx, dy, dz) for dz in (-1, 0, 1) for dy in (-1, 0, 1) for dx in (-1, 0, 1)
)

_PLAYER_ROWS = (-2, -1, 0, 1)
_MOB_ROWS = (-1, 0, 1)


def neighbor_index(dx: int, dy: int, dz: int) -> int:
    if not (-1 <= dx <= 1 and -1 <= dy <= 1 and -1 <= dz <= 1):
        raise IndexError(f"neighbor offset out of range: {(dx, dy, dz)}")
    return (dx + 1) + 3 * (dy + 1) + 9 * (dz + 1)


def check_material(material_id: int) -> int:
    mid = int(material_id)
    if not config.MATERIAL_MIN <= mid <= config.MATERIAL_MAX:
        raise MaterialRangeError(
            f"material id {material_id} outside [{config.MATERIAL_MIN}, {config.MATERIAL_MAX}]"
        )
    return mid


def _triple(value) -> tuple[int, int, int]:
    if isinstance(value, Integral):
        v = int(value)
        return (v, v, v)
    x, y, z = value
    return (int(x), int(y), int(z))


class Neighborhood:
    """The 27 material ids around a voxel, addressed by (dx, dy, dz).

    `valid` flags which cells lie inside the grid; an outside cell holds -1
    like air, so the flag is the only way to tell the two apart.
    """

    __slots__ = ("_values", "_valid")

    def __init__(self, values, valid=None) -> None:
        values = tuple(int(v) for v in values)
        valid = tuple(bool(v) for v in valid) if valid is not None else (True,) * len(values)
        if len(values) != len(NEIGHBOR_OFFSETS) or len(valid) != len(values):
            raise NeighborhoodError(
                f"neighborhood must hold {len(NEIGHBOR_OFFSETS)} voxels, got {len(values)} values and {len(valid)} flags"
            )
        self._values = values
        self._valid = valid

    @classmethod
    def with_solids(cls, solids, material: int = config.BLOCK_STONE) -> "Neighborhood":
        solids = set(solids)
        return cls(material if off in solids else config.BLOCK_AIR for off in NEIGHBOR_OFFSETS)

    def at(self, dx: int, dy: int, dz: int) -> int:
        return self._values[neighbor_index(dx, dy, dz)]

    def solid(self, dx: int, dy: int, dz: int) -> bool:
        return self.at(dx, dy, dz) != config.BLOCK_AIR

    def in_grid(self, dx: int, dy: int, dz: int) -> bool:
        return self._valid[neighbor_index(dx, dy, dz)]

    def values(self) -> tuple[int, ...]:
        return self._values

    def __len__(self) -> int:
        return len(self._values)


class Chunk:
    __slots__ = ("key", "mesh", "dirty")

    def __init__(self, key: int) -> None:
        self.key = key
        self.mesh = CellMesh(f"chunk-{key}")
        self.dirty = True


class VoxelGrid:
    """Dense cubic voxel world centred on the origin.

    Voxel ``(i, j, k)`` covers ``[i - h, i - h + 1)`` on each axis where ``h``
    is the half extent, so voxel centres sit on the ``n + 0.5`` lattice.
    Chunks are cubes of ``chunk_size`` voxels keyed by
    ``cx + cy * n + cz * n * n``.
    """

    def __init__(self, grid_size: int = config.GRID_SIZE, chunk_size: int = config.CHUNK_SIZE) -> None:
        grid_size = int(grid_size)
        chunk_size = int(chunk_size)
        if grid_size <= 0 or chunk_size <= 0:
            raise GridConfigError(f"grid_size and chunk_size must be positive, got {grid_size}, {chunk_size}")
        if grid_size % chunk_size != 0:
            raise GridConfigError(
                f"grid_size {grid_size} must be an integer multiple of chunk_size {chunk_size}"
            )
        if grid_size % 2 != 0:
            raise GridConfigError(f"grid_size {grid_size} must be even to centre the world")

        self.grid_size = grid_size
        self.chunk_size = chunk_size
        self.chunk_count = grid_size // chunk_size
        self.half_extent = grid_size // 2
        self._voxels = np.full((grid_size, grid_size, grid_size), config.BLOCK_AIR, dtype=np.int8)
        self._chunks: dict[int, Chunk] = {}
        logger.debug(
            "grid %d^3 voxels, %d^3 chunks of %d", grid_size, self.chunk_count, chunk_size
        )

    # Coordinates --------------------------------------------------------

    @staticmethod
    def snap(point) -> Vec3:
        p = Vec3.of(point)
        return Vec3(math.floor(p.x) + 0.5, math.floor(p.y) + 0.5, math.floor(p.z) + 0.5)

    @staticmethod
    def _world_cell(point) -> tuple[int, int, int]:
        p = Vec3.of(point)
        return (math.floor(p.x), math.floor(p.y), math.floor(p.z))

    def _index(self, cell: tuple[int, int, int]) -> tuple[int, int, int]:
        h = self.half_extent
        return (cell[0] + h, cell[1] + h, cell[2] + h)

    def _valid(self, index: tuple[int, int, int]) -> bool:
        g = self.grid_size
        return 0 <= index[0] < g and 0 <= index[1] < g and 0 <= index[2] < g

    def _center(self, cell: tuple[int, int, int]) -> Vec3:
        return Vec3(cell[0] + 0.5, cell[1] + 0.5, cell[2] + 0.5)

    def _cell_value(self, cell: tuple[int, int, int]) -> int:
        index = self._index(cell)
        if not self._valid(index):
            return config.BLOCK_AIR
        return int(self._voxels[index])

    def in_bounds(self, point) -> bool:
        return self._valid(self._index(self._world_cell(point)))

    # Chunks -------------------------------------------------------------

    def _key_of_index(self, index: tuple[int, int, int]) -> int:
        cs = self.chunk_size
        n = self.chunk_count
        return index[0] // cs + (index[1] // cs) * n + (index[2] // cs) * n * n

    def key_coords(self, key: int) -> tuple[int, int, int]:
        n = self.chunk_count
        return (key % n, (key // n) % n, key // (n * n))

    def valid_key(self, key: int) -> bool:
        return 0 <= key < self.chunk_count**3

    def chunk_key(self, position) -> tuple[int, bool]:
        """Key of the chunk containing `position` and whether it is inside the grid."""
        index = self._index(self._world_cell(position))
        if not self._valid(index):
            return -1, False
        return self._key_of_index(index), True

    def view_chunks(self, center_key: int, radius: int) -> list[int]:
        """Keys within `radius` chunks of `center_key`, in ascending key order."""
        n = self.chunk_count
        cx, cy, cz = self.key_coords(center_key)
        keys = []
        for z in range(max(0, cz - radius), min(n, cz + radius + 1)):
            for y in range(max(0, cy - radius), min(n, cy + radius + 1)):
                for x in range(max(0, cx - radius), min(n, cx + radius + 1)):
                    keys.append(x + y * n + z * n * n)
        return keys

    def _chunk(self, key: int) -> Chunk:
        chunk = self._chunks.get(key)
        if chunk is None:
            chunk = Chunk(key)
            self._chunks[key] = chunk
        return chunk

    def is_dirty(self, key: int) -> bool:
        chunk = self._chunks.get(key)
        return chunk is None or chunk.dirty

    def _mark_dirty(self, lo: tuple[int, int, int], hi: tuple[int, int, int]) -> None:
        # Widen by one voxel: an edit on a chunk face changes the neighbor's surface.
        cs = self.chunk_size
        n = self.chunk_count
        spans = [
            range(max(0, (lo[a] - 1) // cs), min(n - 1, (hi[a] + 1) // cs) + 1) for a in range(3)
        ]
        for z in spans[2]:
            for y in spans[1]:
                for x in spans[0]:
                    chunk = self._chunks.get(x + y * n + z * n * n)
                    if chunk is not None:
                        chunk.dirty = True

    def chunk_mesh(self, key: int) -> CellMesh:
        """Surface cells of a chunk, rebuilt when the chunk is dirty."""
        if not self.valid_key(key):
            raise KeyError(f"chunk key {key} outside grid")
        chunk = self._chunk(key)
        if chunk.dirty:
            self._rebuild_chunk(chunk)
        return chunk.mesh

    def _padded_block(self, lo: tuple[int, int, int]) -> np.ndarray:
        cs = self.chunk_size
        g = self.grid_size
        block = np.full((cs + 2, cs + 2, cs + 2), config.BLOCK_AIR, dtype=np.int8)
        src = []
        dst = []
        for a in range(3):
            s0 = max(0, lo[a] - 1)
            s1 = min(g, lo[a] + cs + 1)
            src.append(slice(s0, s1))
            dst.append(slice(s0 - (lo[a] - 1), s1 - (lo[a] - 1)))
        block[tuple(dst)] = self._voxels[tuple(src)]
        return block

    def _rebuild_chunk(self, chunk: Chunk) -> None:
        cs = self.chunk_size
        cx, cy, cz = self.key_coords(chunk.key)
        lo = (cx * cs, cy * cs, cz * cs)
        padded = self._padded_block(lo)
        core = padded[1:-1, 1:-1, 1:-1]
        exposed = np.zeros(core.shape, dtype=bool)
        for dx, dy, dz in _FACE_NEIGHBORS:
            exposed |= (
                padded[1 + dx : cs + 1 + dx, 1 + dy : cs + 1 + dy, 1 + dz : cs + 1 + dz]
                == config.BLOCK_AIR
            )
        surface = (core != config.BLOCK_AIR) & exposed
        local = np.argwhere(surface)
        h = self.half_extent
        points = (local + np.array(lo) - h).astype(np.float32) + 0.5
        chunk.mesh.set(make_cells(points, core[surface]))
        chunk.dirty = False

    # Voxel access -------------------------------------------------------

    def grid_value(self, point) -> int:
        """Material id at `point`; -1 for air and for points outside the grid."""
        return self._cell_value(self._world_cell(point))

    def lookup(self, point) -> tuple[int, bool]:
        index = self._index(self._world_cell(point))
        if not self._valid(index):
            return config.BLOCK_AIR, False
        return int(self._voxels[index]), True

    def voxels(self) -> np.ndarray:
        """Read-only view of the voxel array, indexed [x, y, z]."""
        view = self._voxels.view()
        view.flags.writeable = False
        return view

    def replace_voxels(self, volume: np.ndarray) -> None:
        volume = np.asarray(volume)
        if volume.shape != self._voxels.shape:
            raise GridConfigError(f"volume shape {volume.shape} does not match grid {self._voxels.shape}")
        if volume.size and (volume.min() < config.MATERIAL_MIN or volume.max() > config.MATERIAL_MAX):
            raise MaterialRangeError("volume holds material ids outside the valid range")
        self._voxels[...] = volume
        for chunk in self._chunks.values():
            chunk.dirty = True

    def set_geometry(self, origin, scale, offset, material_id: int) -> int:
        """Write or erase a box of voxels next to `origin`.

        The box spans ``scale`` voxels per axis starting at the voxel holding
        `origin`; a negative `offset` component grows it toward -axis instead
        of +axis. Returns how many voxels changed value.
        """
        material_id = check_material(material_id)
        sizes = _triple(scale)
        signs = tuple(1 if o >= 0 else -1 for o in Vec3.of(offset))
        base = self._index(self._world_cell(origin))
        g = self.grid_size
        lo = []
        hi = []
        for a in range(3):
            n = max(0, sizes[a])
            if signs[a] > 0:
                a0, a1 = base[a], base[a] + n
            else:
                a0, a1 = base[a] - n + 1, base[a] + 1
            a0 = max(0, a0)
            a1 = min(g, a1)
            if a0 >= a1:
                return 0
            lo.append(a0)
            hi.append(a1)

        region = self._voxels[lo[0] : hi[0], lo[1] : hi[1], lo[2] : hi[2]]
        changed = int(np.count_nonzero(region != material_id))
        if changed:
            region[...] = material_id
            self._mark_dirty(tuple(lo), tuple(h - 1 for h in hi))
        return changed

    # Ray casting --------------------------------------------------------

    def _traverse(self, ray: Ray, max_dist: float):
        """Yield the integer world cells pierced by `ray`, in order (3-D DDA)."""
        origin = ray.origin
        direction = ray.direction
        cell = list(self._world_cell(origin))
        step = [0, 0, 0]
        t_max = [math.inf, math.inf, math.inf]
        t_delta = [math.inf, math.inf, math.inf]
        for a in range(3):
            d = direction[a]
            o = origin[a]
            if d > 0.0:
                step[a] = 1
                t_max[a] = (cell[a] + 1 - o) / d
                t_delta[a] = 1.0 / d
            elif d < 0.0:
                step[a] = -1
                t_max[a] = (o - cell[a]) / -d
                t_delta[a] = -1.0 / d

        while True:
            yield (cell[0], cell[1], cell[2])
            axis = min(range(3), key=t_max.__getitem__)
            if t_max[axis] > max_dist:
                return
            cell[axis] += step[axis]
            t_max[axis] += t_delta[axis]

    def ray_trace_last(self, ray: Ray, max_dist: float) -> Vec3:
        """Centre of the first solid voxel on the ray (removal target)."""
        last = None
        for cell in self._traverse(ray, max_dist):
            last = cell
            if self._cell_value(cell) != config.BLOCK_AIR:
                break
        return self._center(last)

    def ray_trace_prev(self, ray: Ray, max_dist: float) -> Vec3:
        """Centre of the empty voxel just before the first hit (placement target)."""
        prev = None
        for cell in self._traverse(ray, max_dist):
            if self._cell_value(cell) != config.BLOCK_AIR:
                return self._center(prev if prev is not None else cell)
            prev = cell
        return self._center(prev)

    def ray_trace_atlas(self, ray: Ray, max_dist: float) -> int:
        """Erase every voxel along the ray up to `max_dist`. Returns the count erased."""
        removed = 0
        for cell in self._traverse(ray, max_dist):
            index = self._index(cell)
            if not self._valid(index) or self._voxels[index] == config.BLOCK_AIR:
                continue
            self._voxels[index] = config.BLOCK_AIR
            self._mark_dirty(index, index)
            removed += 1
        return removed

    # Neighborhood queries -----------------------------------------------

    def _solid_for_collision(self, cell: tuple[int, int, int]) -> bool:
        # The floor of the world is impassable.
        if self._index(cell)[1] < 0:
            return True
        return self._cell_value(cell) != config.BLOCK_AIR

    def _collision_cells(self, position, rows) -> list[Box]:
        x, y, z = self._world_cell(position)
        out = []
        for dy in rows:
            for dz in (-1, 0, 1):
                for dx in (-1, 0, 1):
                    cell = (x + dx, y + dy, z + dz)
                    if self._solid_for_collision(cell):
                        out.append(Box.unit(self._center(cell)))
        return out

    def create_player_collision_cells(self, position) -> list[Box]:
        """Solid voxels in the 3x4x3 block a player-sized body can touch."""
        return self._collision_cells(position, _PLAYER_ROWS)

    def create_mob_collision_cells(self, position) -> list[Box]:
        """Solid voxels in the 3x3x3 block around a mob-sized body."""
        return self._collision_cells(position, _MOB_ROWS)

    def get_neighbors(self, position) -> list[int]:
        """The 27 material ids around `position`, in NEIGHBOR_OFFSETS order.

        Cells outside the grid read as air (-1); `neighbor_validity` reports
        which ones those are.
        """
        x, y, z = self._world_cell(position)
        values = [self._cell_value((x + dx, y + dy, z + dz)) for dx, dy, dz in NEIGHBOR_OFFSETS]
        if len(values) != len(NEIGHBOR_OFFSETS):
            raise NeighborhoodError(f"neighbor query returned {len(values)} voxels")
        return values

    def neighbor_validity(self, position) -> list[bool]:
        x, y, z = self._world_cell(position)
        return [self._valid(self._index((x + dx, y + dy, z + dz))) for dx, dy, dz in NEIGHBOR_OFFSETS]

    def neighborhood(self, position) -> Neighborhood:
        return Neighborhood(self.get_neighbors(position), self.neighbor_validity(position))

    # Preview ------------------------------------------------------------

    def atlas_preview(self, mesh_out: CellMesh, offset, scale, material_id: int = config.BLOCK_BEDROCK) -> None:
        """Fill `mesh_out` with the placement box in voxel-local coordinates.

        Only the mesh is touched; voxel storage stays as it is.
        """
        material_id = check_material(material_id)
        sizes = _triple(scale)
        signs = [1 if o >= 0 else -1 for o in Vec3.of(offset)]
        axes = [np.arange(max(0, n), dtype=np.float32) * s for n, s in zip(sizes, signs)]
        xs, ys, zs = np.meshgrid(*axes, indexing="ij")
        points = np.stack((xs.ravel(), ys.ravel(), zs.ravel()), axis=-1)
        atlas = np.full((points.shape[0],), material_id, dtype=np.int8)
        mesh_out.set(make_cells(points, atlas))


class StreamingWindow:
    """Chunk window following the tracked entity.

    The orchestrator owns this; the grid only answers key queries.
    """

    def __init__(self, grid: VoxelGrid, radius: int = config.VIEW_RADIUS) -> None:
        self.grid = grid
        self.radius = int(radius)
        self.recent_chunk: int | None = None
        self._view: list[int] = []

    def update_chunk(self, position_or_key) -> bool:
        """Move the window; returns True when the recent chunk changed."""
        if isinstance(position_or_key, Integral):
            key = int(position_or_key)
            valid = self.grid.valid_key(key)
        else:
            key, valid = self.grid.chunk_key(position_or_key)
        if not valid:
            logger.warning("ignoring streaming update outside the grid: %r", position_or_key)
            return False
        if key == self.recent_chunk:
            return False
        self.recent_chunk = key
        self._view = self.grid.view_chunks(key, self.radius)
        logger.info("streaming window centred on chunk %d (%d chunks)", key, len(self._view))
        return True

    def get_view_chunks(self) -> list[int]:
        return list(self._view)
