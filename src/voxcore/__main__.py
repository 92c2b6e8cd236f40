from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np
import pygame

from . import config, terrain
from .errors import VoxcoreError
from .grid import VoxelGrid
from .linalg import Vec3
from .logging_config import setup_logging
from .nav import NavController
from .nav.network import serialize
from .nav.training import evolve, pretrain, randomize
from .sim import WorldSimulation

logger = logging.getLogger("voxcore.cli")


def _ground_point(grid: VoxelGrid, x: float, z: float, lift: float = 0.5) -> Vec3:
    return Vec3(x, terrain.surface_height(grid, x, z) + lift, z)


def _pretrained(rng: np.random.Generator, grid: VoxelGrid, start: Vec3, dest: Vec3, rounds: int):
    params = randomize(rng)
    error = 0.0
    for _ in range(rounds):
        params, error = pretrain(params, rng, grid, start, dest)
    logger.debug("pretrained controller, final error %.4f", error)
    return params


def run(ns: argparse.Namespace) -> int:
    rng = np.random.default_rng(ns.seed)
    h = ns.grid_size // 2
    sim = WorldSimulation(
        (0.5, h - 3.0, 0.5),
        grid_size=ns.grid_size,
        chunk_size=ns.chunk_size,
        view_radius=ns.view_radius,
        populate=lambda grid: terrain.generate(grid, ns.seed),
    )
    dest = _ground_point(sim.grid, ns.dest[0], ns.dest[1])
    sim.set_destination(dest)

    if ns.weights:
        sim.controller.deserialize(Path(ns.weights).read_bytes())
    else:
        start = _ground_point(sim.grid, -dest.x, -dest.z)
        sim.controller = NavController.from_params(_pretrained(rng, sim.grid, start, dest, ns.pretrain))

    spread = max(1.0, h / 2.0)
    for _ in range(ns.agents):
        x, z = rng.uniform(-spread, spread, size=2)
        sim.add_agent(_ground_point(sim.grid, x, z, lift=1.0))
    sim.toggle_nav_mode()

    pygame.init()
    clock = pygame.time.Clock()
    try:
        for frame in range(ns.frames):
            dt = 1.0 / ns.fps if ns.fixed_step else clock.get_time() / 1000.0
            if sim.update(dt):
                logger.info("frame %d: player entered chunk %d", frame, sim.window.recent_chunk)
            if ns.report and frame % ns.report == 0:
                remaining = [(sim.agent_position(a) - dest).mag() for a in sim.agent_ids()]
                if remaining:
                    logger.info("frame %d: mean distance to goal %.2f", frame, float(np.mean(remaining)))
            clock.tick(ns.fps)
    finally:
        pygame.quit()

    remaining = [(sim.agent_position(a) - dest).mag() for a in sim.agent_ids()]
    if remaining:
        logger.info(
            "%d agents after %d frames: mean distance %.2f, closest %.2f",
            len(remaining),
            ns.frames,
            float(np.mean(remaining)),
            float(np.min(remaining)),
        )
    return 0


def train(ns: argparse.Namespace) -> int:
    rng = np.random.default_rng(ns.seed)
    grid = VoxelGrid(ns.grid_size, ns.chunk_size)
    terrain.generate(grid, ns.seed)
    start = _ground_point(grid, ns.start[0], ns.start[1])
    dest = _ground_point(grid, ns.dest[0], ns.dest[1])

    population = [_pretrained(rng, grid, start, dest, ns.pretrain) for _ in range(ns.population)]
    scores: list[float] = []
    for generation in range(ns.generations):
        population, scores = evolve(population, rng, grid, start, dest, ns.elite)
        logger.info("generation %d: best fitness %.3f", generation, scores[0])

    out = Path(ns.out)
    out.write_bytes(serialize(population[0]))
    logger.info("wrote %s (%d bytes)", out, out.stat().st_size)
    return 0


def _pair(text: str) -> tuple[float, float]:
    try:
        x, z = (float(v) for v in text.split(","))
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"expected 'x,z', got {text!r}") from e
    return (x, z)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="voxcore",
        description="Headless voxel world simulation and steering-network training.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    parser.add_argument("--log-file", help="Also write logs to this file.")
    parser.add_argument("--grid-size", type=int, default=config.GRID_SIZE)
    parser.add_argument("--chunk-size", type=int, default=config.CHUNK_SIZE)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("--pretrain", type=int, default=5, help="Supervised passes per controller.")
    parser.add_argument("--dest", type=_pair, default=(8.0, 8.0), help="Destination column as 'x,z'.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_run = sub.add_parser("run", help="Run the frame loop with agents walking to --dest.")
    p_run.add_argument("--frames", type=int, default=600)
    p_run.add_argument("--fps", type=int, default=config.FPS_LIMIT)
    p_run.add_argument("--fixed-step", action="store_true", help="Use 1/fps per frame instead of wall time.")
    p_run.add_argument("--agents", type=int, default=8)
    p_run.add_argument("--view-radius", type=int, default=config.VIEW_RADIUS)
    p_run.add_argument("--weights", help="Steering weights written by `voxcore train`.")
    p_run.add_argument("--report", type=int, default=60, help="Log progress every N frames (0 = never).")
    p_run.set_defaults(func=run)

    p_train = sub.add_parser("train", help="Evolve steering weights and write them to --out.")
    p_train.add_argument("--start", type=_pair, default=(-8.0, -8.0), help="Start column as 'x,z'.")
    p_train.add_argument("--population", type=int, default=config.POPULATION)
    p_train.add_argument("--elite", type=int, default=config.ELITE)
    p_train.add_argument("--generations", type=int, default=20)
    p_train.add_argument("--out", default="steering.bin")
    p_train.set_defaults(func=train)
    return parser


def main(argv: list[str] | None = None) -> int:
    ns = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if ns.verbose else logging.INFO, ns.log_file)
    try:
        return ns.func(ns)
    except (VoxcoreError, OSError) as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
