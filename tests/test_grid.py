import numpy as np
import pytest

from voxcore import config
from voxcore.errors import GridConfigError, MaterialRangeError, NeighborhoodError
from voxcore.grid import Neighborhood, StreamingWindow, VoxelGrid, neighbor_index
from voxcore.linalg import Ray, Vec3
from voxcore.mesh import CellMesh

STONE = config.BLOCK_STONE
AIR = config.BLOCK_AIR


def small_grid():
    # 16^3 voxels in 4^3 chunks; world spans [-8, 8) on every axis.
    return VoxelGrid(16, 4)


def put(grid, x, y, z, material=STONE):
    return grid.set_geometry((x + 0.5, y + 0.5, z + 0.5), 1, (1, 1, 1), material)


class TestGridConfig:
    @pytest.mark.parametrize("grid_size,chunk_size", [(10, 3), (9, 3), (0, 4), (16, -4)])
    def test_rejects_invalid_sizes(self, grid_size, chunk_size):
        with pytest.raises(GridConfigError):
            VoxelGrid(grid_size, chunk_size)

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            VoxelGrid(10, 4)

    def test_starts_empty(self):
        grid = small_grid()
        assert grid.chunk_count == 4
        assert grid.half_extent == 8
        assert np.all(grid.voxels() == AIR)

    def test_voxels_view_is_read_only(self):
        grid = small_grid()
        with pytest.raises(ValueError):
            grid.voxels()[0, 0, 0] = STONE


class TestChunkKeys:
    def test_key_inside(self):
        grid = small_grid()
        assert grid.chunk_key((0.5, 0.5, 0.5)) == (42, True)
        assert grid.chunk_key((-8.0, -8.0, -8.0)) == (0, True)
        assert grid.chunk_key((7.99, 7.99, 7.99)) == (63, True)

    def test_key_outside(self):
        grid = small_grid()
        assert grid.chunk_key((100.0, 0.0, 0.0)) == (-1, False)
        assert grid.chunk_key((0.0, -8.01, 0.0)) == (-1, False)

    def test_key_coords_round_trip(self):
        grid = small_grid()
        assert grid.key_coords(42) == (2, 2, 2)
        assert grid.key_coords(1 + 2 * 4 + 3 * 16) == (1, 2, 3)

    def test_view_chunks_ascending_and_clamped(self):
        grid = small_grid()
        keys = grid.view_chunks(0, 1)
        assert keys == [0, 1, 4, 5, 16, 17, 20, 21]
        full = grid.view_chunks(42, 1)
        assert len(full) == 27
        assert full == sorted(full)


class TestNeighbors:
    def test_index_order(self):
        assert neighbor_index(-1, -1, -1) == 0
        assert neighbor_index(1, 0, 0) == 14
        assert neighbor_index(1, 1, 1) == 26
        with pytest.raises(IndexError):
            neighbor_index(2, 0, 0)

    @pytest.mark.parametrize("position", [(0.5, 0.5, 0.5), (-7.5, -7.5, -7.5), (7.9, 3.2, -1.1)])
    def test_always_27(self, position):
        assert len(small_grid().get_neighbors(position)) == 27

    def test_values_follow_offsets(self):
        grid = small_grid()
        put(grid, 1, 0, 0, config.BLOCK_DIRT)
        put(grid, 0, 1, 0, config.BLOCK_GRASS)
        values = grid.get_neighbors((0.5, 0.5, 0.5))
        assert values[neighbor_index(1, 0, 0)] == config.BLOCK_DIRT
        assert values[neighbor_index(0, 1, 0)] == config.BLOCK_GRASS
        assert values[neighbor_index(0, 0, 0)] == AIR

        hood = grid.neighborhood((0.5, 0.5, 0.5))
        assert hood.solid(1, 0, 0)
        assert not hood.solid(-1, 0, 0)

    def test_validity_separates_outside_from_air(self):
        grid = small_grid()
        corner = (-7.5, -7.5, -7.5)
        values = grid.get_neighbors(corner)
        valid = grid.neighbor_validity(corner)

        assert len(valid) == 27
        assert values[neighbor_index(-1, 0, 0)] == AIR
        assert not valid[neighbor_index(-1, 0, 0)]
        assert valid[neighbor_index(1, 0, 0)]
        assert valid[neighbor_index(0, 0, 0)]
        assert sum(valid) == 8

        hood = grid.neighborhood(corner)
        assert not hood.in_grid(0, -1, 0)
        assert hood.in_grid(1, 1, 1)
        assert all(grid.neighbor_validity((0.5, 0.5, 0.5)))

    def test_neighborhood_flags_must_match_values(self):
        with pytest.raises(NeighborhoodError):
            Neighborhood([AIR] * 27, [True] * 26)

    def test_neighborhood_rejects_wrong_count(self):
        with pytest.raises(NeighborhoodError):
            Neighborhood([AIR] * 26)
        with pytest.raises(RuntimeError):
            Neighborhood([AIR] * 28)


class TestEdits:
    def test_write_then_read(self):
        grid = small_grid()
        p = Vec3(1.2, -3.4, 2.7)
        assert grid.set_geometry(p, 1, (1, 1, 1), config.BLOCK_SAND) == 1
        assert grid.grid_value(p) == config.BLOCK_SAND
        assert grid.lookup(p) == (config.BLOCK_SAND, True)

    def test_erase(self):
        grid = small_grid()
        p = Vec3(1.2, -3.4, 2.7)
        grid.set_geometry(p, 1, (1, 1, 1), STONE)
        assert grid.set_geometry(p, 1, (1, 1, 1), AIR) == 1
        assert grid.grid_value(p) == AIR

    def test_rewrite_same_material_changes_nothing(self):
        grid = small_grid()
        put(grid, 0, 0, 0)
        assert put(grid, 0, 0, 0) == 0

    @pytest.mark.parametrize("material", [-2, 16, 100])
    def test_material_range(self, material):
        grid = small_grid()
        with pytest.raises(MaterialRangeError):
            grid.set_geometry((0.5, 0.5, 0.5), 1, (1, 1, 1), material)
        assert np.all(grid.voxels() == AIR)

    def test_negative_offset_grows_backwards(self):
        grid = small_grid()
        assert grid.set_geometry((0.5, 0.5, 0.5), 2, (-1, 1, 1), STONE) == 8
        assert grid.grid_value((-0.5, 0.5, 0.5)) == STONE
        assert grid.grid_value((0.5, 1.5, 1.5)) == STONE
        assert grid.grid_value((1.5, 0.5, 0.5)) == AIR

    def test_box_clipped_to_grid(self):
        grid = small_grid()
        assert grid.set_geometry((7.5, 7.5, 7.5), 3, (1, 1, 1), STONE) == 1

    def test_outside_reads_as_air(self):
        grid = small_grid()
        assert grid.grid_value((50.0, 0.0, 0.0)) == AIR
        assert grid.lookup((50.0, 0.0, 0.0)) == (AIR, False)

    def test_replace_voxels_checks_shape_and_range(self):
        grid = small_grid()
        with pytest.raises(GridConfigError):
            grid.replace_voxels(np.zeros((4, 4, 4), dtype=np.int8))
        with pytest.raises(MaterialRangeError):
            grid.replace_voxels(np.full((16, 16, 16), 20, dtype=np.int8))
        grid.replace_voxels(np.full((16, 16, 16), STONE, dtype=np.int8))
        assert grid.grid_value((0.0, 0.0, 0.0)) == STONE


class TestRays:
    def test_last_and_prev_around_single_voxel(self):
        grid = small_grid()
        put(grid, 3, 0, 0)
        ray = Ray((0.5, 0.5, 0.5), (5.5, 0.5, 0.5))

        assert grid.ray_trace_last(ray, 6.0) == Vec3(3.5, 0.5, 0.5)
        assert grid.ray_trace_prev(ray, 6.0) == Vec3(2.5, 0.5, 0.5)

    def test_diagonal_hit(self):
        grid = small_grid()
        put(grid, 2, 2, 0)
        ray = Ray((0.5, 0.5, 0.5), (3.5, 3.5, 0.5))
        assert grid.ray_trace_last(ray, 6.0) == Vec3(2.5, 2.5, 0.5)

    def test_miss_returns_last_cell_reached(self):
        grid = small_grid()
        ray = Ray((0.5, 0.5, 0.5), (5.5, 0.5, 0.5))
        assert grid.ray_trace_last(ray, 2.0) == Vec3(2.5, 0.5, 0.5)

    def test_prev_when_starting_inside_solid(self):
        grid = small_grid()
        put(grid, 0, 0, 0)
        ray = Ray((0.5, 0.5, 0.5), (5.5, 0.5, 0.5))
        assert grid.ray_trace_prev(ray, 6.0) == Vec3(0.5, 0.5, 0.5)

    def test_dig_erases_along_ray(self):
        grid = small_grid()
        for x in (1, 2, 3):
            put(grid, x, 0, 0)
        put(grid, 1, 1, 0)
        ray = Ray((0.5, 0.5, 0.5), (5.5, 0.5, 0.5))

        assert grid.ray_trace_atlas(ray, 10.0) == 3
        for x in (1, 2, 3):
            assert grid.grid_value((x + 0.5, 0.5, 0.5)) == AIR
        assert grid.grid_value((1.5, 1.5, 0.5)) == STONE


class TestCollisionCells:
    def test_empty_air(self):
        grid = small_grid()
        assert grid.create_player_collision_cells((0.5, 0.5, 0.5)) == []
        assert grid.create_mob_collision_cells((0.5, 0.5, 0.5)) == []

    def test_world_floor_is_solid(self):
        grid = small_grid()
        # Bottom voxel layer: the two player rows below it lie under the world.
        assert len(grid.create_player_collision_cells((0.5, -7.5, 0.5))) == 18
        assert len(grid.create_mob_collision_cells((0.5, -7.5, 0.5))) == 9

    def test_upper_bounds(self):
        grid = small_grid()
        grid.replace_voxels(np.full((16, 16, 16), STONE, dtype=np.int8))
        assert len(grid.create_player_collision_cells((0.5, 0.5, 0.5))) == 36
        assert len(grid.create_mob_collision_cells((0.5, 0.5, 0.5))) == 27

    def test_cells_are_unit_boxes(self):
        grid = small_grid()
        put(grid, 1, 0, 0)
        (box,) = grid.create_mob_collision_cells((0.5, 0.5, 0.5))
        assert box.min == Vec3(1.0, 0.0, 0.0)
        assert box.max == Vec3(2.0, 1.0, 1.0)


class TestChunkMesh:
    def test_single_voxel(self):
        grid = small_grid()
        put(grid, 0, 0, 0, config.BLOCK_GRASS)
        mesh = grid.chunk_mesh(42)
        assert len(mesh) == 1
        assert mesh.points().tolist() == [[0.5, 0.5, 0.5]]
        assert mesh.cells["atlas"][0] == config.BLOCK_GRASS

    def test_hidden_voxels_skipped(self):
        grid = small_grid()
        grid.set_geometry((0.5, 0.5, 0.5), 3, (1, 1, 1), STONE)
        assert len(grid.chunk_mesh(42)) == 26

    def test_edit_marks_dirty(self):
        grid = small_grid()
        put(grid, 0, 0, 0)
        grid.chunk_mesh(42)
        assert not grid.is_dirty(42)

        put(grid, 1, 0, 0)
        assert grid.is_dirty(42)
        assert len(grid.chunk_mesh(42)) == 2
        assert not grid.is_dirty(42)

    def test_edit_on_face_dirties_neighbor(self):
        grid = small_grid()
        grid.chunk_mesh(43)
        assert not grid.is_dirty(43)
        # x = 3 is the last voxel column of chunk 42.
        put(grid, 3, 0, 0)
        assert grid.is_dirty(43)

    def test_invalid_key(self):
        with pytest.raises(KeyError):
            small_grid().chunk_mesh(64)


class TestPreview:
    def test_preview_box_signs(self):
        grid = small_grid()
        mesh = CellMesh("preview")
        grid.atlas_preview(mesh, (-1, 1, 1), (2, 1, 3), config.BLOCK_DIRT)

        points = mesh.points()
        assert len(mesh) == 6
        assert set(points[:, 0].tolist()) == {0.0, -1.0}
        assert set(points[:, 2].tolist()) == {0.0, 1.0, 2.0}
        assert np.all(mesh.cells["atlas"] == config.BLOCK_DIRT)

    def test_preview_leaves_voxels_alone(self):
        grid = small_grid()
        grid.atlas_preview(CellMesh(), (1, 1, 1), (5, 5, 5))
        assert np.all(grid.voxels() == AIR)


class TestStreamingWindow:
    def test_update_and_view(self):
        grid = small_grid()
        window = StreamingWindow(grid, radius=1)
        assert window.update_chunk((0.5, 0.5, 0.5))
        assert window.recent_chunk == 42
        assert window.get_view_chunks() == grid.view_chunks(42, 1)
        assert not window.update_chunk((1.5, 1.5, 1.5))

    def test_update_by_key(self):
        window = StreamingWindow(small_grid(), radius=0)
        assert window.update_chunk(5)
        assert window.get_view_chunks() == [5]

    def test_outside_is_ignored(self):
        window = StreamingWindow(small_grid(), radius=1)
        window.update_chunk(42)
        assert not window.update_chunk((100.0, 0.0, 0.0))
        assert not window.update_chunk(1000)
        assert window.recent_chunk == 42

    def test_view_is_a_copy(self):
        window = StreamingWindow(small_grid(), radius=1)
        window.update_chunk(42)
        window.get_view_chunks().clear()
        assert len(window.get_view_chunks()) == 27
