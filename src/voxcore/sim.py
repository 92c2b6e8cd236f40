from __future__ import annotations

import logging
from typing import Callable, Protocol

from . import config
from .errors import MaterialRangeError
from .grid import StreamingWindow, VoxelGrid, check_material
from .linalg import Box, Ray, Vec3
from .mesh import CellMesh
from .nav import NavController, PathQuery
from .physics import BodyHandle, BodyShape, PhysicsWorld

logger = logging.getLogger(__name__)


class GeometrySink(Protocol):
    def upload_geometry(self, chunk_keys: list[int], chunk_mesh: Callable[[int], CellMesh]) -> None: ...

    def upload_preview(self, mesh: CellMesh) -> None: ...


class EffectSink(Protocol):
    def emit(self, point: Vec3, direction: Vec3, intensity: float) -> None: ...


class AgentView(Protocol):
    def update_agents(self, positions: dict[int, Vec3]) -> None: ...


def nav_speed(remain: float) -> float:
    """Agent speed for a given distance to goal; eases off near the goal."""
    knee = config.NAV_SPEED_KNEE
    return config.NAV_SPEED_SCALE * ((remain - knee) / (remain + knee) + config.NAV_SPEED_BIAS)


class WorldSimulation:
    """Per-frame driver: navigation, then physics, then chunk streaming.

    Rendering and effects are optional collaborators; when absent the
    corresponding notifications are skipped.
    """

    def __init__(
        self,
        player_position,
        *,
        fresh: bool = True,
        grid_size: int = config.GRID_SIZE,
        chunk_size: int = config.CHUNK_SIZE,
        view_radius: int = config.VIEW_RADIUS,
        populate: Callable[[VoxelGrid], None] | None = None,
        controller: NavController | None = None,
        geometry: GeometrySink | None = None,
        effects: EffectSink | None = None,
        agent_view: AgentView | None = None,
    ) -> None:
        self.grid = VoxelGrid(grid_size, chunk_size)
        if populate is not None:
            populate(self.grid)
        self.window = StreamingWindow(self.grid, view_radius)
        self.physics = PhysicsWorld(self.grid)
        self.controller = controller if controller is not None else NavController()
        self.geometry = geometry
        self.effects = effects
        self.agent_view = agent_view

        self.preview_mesh = CellMesh("preview")
        self.preview_point = Vec3()
        self.scale = [1, 1, 1]
        self.cached_offset = [1, 1, 1]
        self.preview_offset = [1, 1, 1]
        self.material = config.BLOCK_BEDROCK
        self.destination = Vec3.of(player_position)
        self.nav_mode = False
        self.edit_mode = False

        self._agents: dict[int, BodyHandle] = {}
        self._next_agent = 0

        self.generate_preview()
        self._player = self._load_character(Vec3.of(player_position), fresh)
        logger.info(
            "world ready: %d^3 voxels, chunk %d, view radius %d",
            grid_size,
            chunk_size,
            view_radius,
        )

    def _load_character(self, position: Vec3, fresh: bool) -> BodyHandle:
        handle = self.physics.add_body(
            Box.around(position, config.PLAYER_HALF_EXTENT), config.BODY_MASS, BodyShape.PLAYER
        )
        self.physics.lock_rotation(handle)
        self.window.update_chunk(position)
        self.generate_terrain()

        if fresh:
            # Clear a 3x3x3 pocket around the spawn point.
            self.scale = [3, 3, 3]
            corner = self.grid.snap(position) - Vec3(1.0, 1.0, 1.0)
            self.preview_offset = [1, 1, 1]
            self._remove_at(corner, (position + Vec3(-1.0, 0.0, 0.0)).norm())
            self.scale = [1, 1, 1]
        return handle

    # Geometry -----------------------------------------------------------

    def generate_terrain(self) -> list[int]:
        keys = self.window.get_view_chunks()
        if self.geometry is not None:
            self.geometry.upload_geometry(keys, self.grid.chunk_mesh)
        return keys

    def generate_preview(self) -> None:
        self.preview_offset = list(self.cached_offset)
        self.grid.atlas_preview(self.preview_mesh, self.preview_offset, self.scale, self.material)
        if self.geometry is not None:
            self.geometry.upload_preview(self.preview_mesh)

    def _remove_at(self, point: Vec3, direction: Vec3) -> int:
        removed = self.grid.set_geometry(point, self.scale, self.preview_offset, config.BLOCK_AIR)
        if removed > 0:
            self.generate_terrain()
            if self.effects is not None:
                self.effects.emit(point, direction, config.DESTROY_INTENSITY)
        return removed

    # Agents -------------------------------------------------------------

    def add_agent(self, position) -> int:
        handle = self.physics.add_body(
            Box.around(position, config.MOB_HALF_EXTENT), config.BODY_MASS, BodyShape.MOB
        )
        self.physics.lock_rotation(handle)
        agent_id = self._next_agent
        self._next_agent += 1
        self._agents[agent_id] = handle
        return agent_id

    def remove_agent(self, agent_id: int) -> None:
        handle = self._agents.pop(agent_id)
        self.physics.remove_body(handle)

    def agent_ids(self) -> list[int]:
        return list(self._agents)

    def agent_handle(self, agent_id: int) -> BodyHandle:
        return self._agents[agent_id]

    def agent_position(self, agent_id: int) -> Vec3:
        return self.physics.body(self._agents[agent_id]).position.clone()

    def agent_warp(self, position, agent_id: int) -> None:
        self.physics.set_position(self._agents[agent_id], position)

    def navigate(self) -> None:
        for handle in self._agents.values():
            query = PathQuery(self.physics.body(handle).position, self.destination)
            direction = self.controller.steer(self.grid, query)
            self.physics.set_velocity(handle, direction * nav_speed(query.remain))

    # Frame --------------------------------------------------------------

    def update(self, dt: float) -> bool:
        """Advance one frame. Returns True when the player changed chunk."""
        if self.nav_mode:
            self.navigate()

        moved = self.physics.step(dt)

        crossed = False
        key, valid = self.grid.chunk_key(self.character_position())
        if valid and key != self.window.recent_chunk:
            self.window.update_chunk(key)
            self.generate_terrain()
            crossed = True

        if self.agent_view is not None:
            ids = {handle: agent_id for agent_id, handle in self._agents.items()}
            self.agent_view.update_agents({ids[h]: p for h, p in moved.items() if h in ids})
        return crossed

    # Player -------------------------------------------------------------

    def character_position(self) -> Vec3:
        return self.physics.body(self._player).position.clone()

    def character_velocity(self) -> Vec3:
        return self.physics.body(self._player).velocity.clone()

    def character_warp(self, position) -> None:
        self.physics.set_position(self._player, position)

    def character_move(self, velocity) -> None:
        body = self.physics.body(self._player)
        dxz = Vec3.of(velocity).xz().norm()
        self.physics.add_force(self._player, dxz * (config.MOVE_FORCE * body.mass))

    def character_jump(self, velocity) -> bool:
        body = self.physics.body(self._player)
        # Only from (near) rest vertically.
        if abs(body.velocity.y) >= config.JUMP_VELOCITY_LIMIT:
            return False
        self.physics.add_force(self._player, Vec3.of(velocity) * (config.JUMP_FORCE * body.mass))
        return True

    def add_block(self, ray: Ray) -> int:
        traced = self.grid.ray_trace_prev(ray, config.EDIT_REACH)
        changed = self.grid.set_geometry(traced, self.scale, self.preview_offset, self.material)
        if changed:
            self.generate_terrain()
        logger.debug("placed %d voxels of material %d at %r", changed, self.material, traced)
        return changed

    def remove_block(self, ray: Ray) -> int:
        """Remove the targeted voxel box; returns the material id that was hit."""
        traced = self.grid.ray_trace_last(ray, config.EDIT_REACH)
        value = self.grid.grid_value(traced)
        if value >= 0:
            self._remove_at(traced, -ray.direction)
        return value

    def ray_block(self, ray: Ray) -> int:
        removed = self.grid.ray_trace_atlas(ray, config.DIG_REACH)
        if removed:
            self.generate_terrain()
        return removed

    def grappling(self, ray: Ray) -> int:
        traced = self.grid.ray_trace_last(ray, config.DIG_REACH)
        value = self.grid.grid_value(traced)
        if value != config.BLOCK_AIR:
            d = traced - ray.origin
            d_factor = 1.0 if d.mag() < config.GRAPPLE_NEAR else 0.5
            y_factor = 0.25 if ray.direction.y < -0.5 else 1.0
            mass = self.physics.body(self._player).mass
            self.physics.add_force(self._player, d * (config.GRAPPLE_FORCE * d_factor * y_factor * mass))
            self.reset_scale()
            self._remove_at(traced, ray.direction)
        return value

    def update_targeting(self, origin, forward) -> Vec3:
        """Recompute the placement point and which way a scaled box grows."""
        origin = Vec3.of(origin)
        forward = Vec3.of(forward)
        ray = Ray(origin, origin + forward.norm() * config.TARGET_PROJECT)
        self.preview_point = self.grid.ray_trace_prev(ray, config.EDIT_REACH)
        self.cached_offset[0] = 1 if forward.x >= 0.0 else -1
        self.cached_offset[2] = 1 if forward.z >= 0.0 else -1
        return self.preview_point

    # Modes and edit settings --------------------------------------------

    def set_scale(self, axis: int, delta: int = 1) -> None:
        if not self.edit_mode:
            return
        if self.cached_offset[axis] != self.preview_offset[axis]:
            self.generate_preview()
        elif self.scale[axis] < config.PREVIEW_MAX_SCALE:
            self.scale[axis] = min(config.PREVIEW_MAX_SCALE, self.scale[axis] + delta)
            self.generate_preview()

    def reset_scale(self) -> None:
        self.scale = [1, 1, 1]
        self.generate_preview()

    def set_material(self, material_id: int) -> None:
        material_id = check_material(material_id)
        if material_id == config.BLOCK_AIR:
            raise MaterialRangeError("cannot select air as a placement material")
        self.material = material_id
        self.generate_preview()

    def set_destination(self, destination) -> None:
        self.destination = Vec3.of(destination)

    def toggle_nav_mode(self) -> bool:
        self.nav_mode = not self.nav_mode
        return self.nav_mode

    def toggle_edit_mode(self) -> bool:
        self.edit_mode = not self.edit_mode
        return self.edit_mode
