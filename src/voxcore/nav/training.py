"""Offline training for the steering network.

Everything here works on flat parameter vectors and returns new vectors;
the inference side never imports this module.
"""
from __future__ import annotations

import logging

import numpy as np

from .. import config
from ..grid import VoxelGrid
from ..linalg import Vec3
from .controller import encode_inputs, steer
from .network import LAYERS, Network, activations, forward, freeze, param_count, unpack
from .path import PathQuery

logger = logging.getLogger(__name__)


def randomize(rng: np.random.Generator, layers=LAYERS) -> np.ndarray:
    return freeze(rng.uniform(-1.0, 1.0, size=param_count(layers)), layers)


def mutate(
    params: np.ndarray,
    rng: np.random.Generator,
    rate: float = config.MUTATION_RATE,
    scale: float = config.MUTATION_SCALE,
) -> np.ndarray:
    """Gaussian noise on a random subset of parameters (never an empty subset)."""
    n = params.shape[0]
    mask = rng.random(n) < rate
    if not mask.any():
        mask[rng.integers(n)] = True
    return freeze(params + mask * rng.normal(0.0, scale, size=n))


def breed(a: np.ndarray, b: np.ndarray, rng: np.random.Generator | None = None) -> np.ndarray:
    """Uniform crossover of two parents, or their midpoint when no rng is given."""
    if rng is None:
        return freeze(0.5 * (np.asarray(a, dtype=np.float32) + np.asarray(b, dtype=np.float32)))
    mask = rng.random(a.shape[0]) < 0.5
    return freeze(np.where(mask, a, b))


def fitness(params: np.ndarray, grid: VoxelGrid, start, dest, moves: int = config.NAV_TOTAL_MOVES) -> float:
    """Score a controller by walking it from `start` toward `dest`.

    Each move earns travel / (remaining + 1). A move into solid ground costs
    1 and is not taken. A move that leaves the agent within one unit of its
    start costs 1.
    """
    network = Network(params)
    query = PathQuery(start, dest)
    score = 0.0
    for _ in range(moves):
        direction = steer(network, grid, query)
        target = query.step(direction, config.NAV_STEP_SIZE)
        if grid.grid_value(target) != config.BLOCK_AIR:
            score -= 1.0
        else:
            query.update(target)

        if query.travel < 1.0:
            score -= 1.0
        score += query.travel / (query.remain + 1.0)
    return score


def backprop(params: np.ndarray, inputs: np.ndarray, target: np.ndarray, learning_rate: float) -> np.ndarray:
    """One SGD step on 0.5 * |output - target|^2."""
    acts = activations(params, inputs)
    updated = np.array(params, dtype=np.float32)
    layers = unpack(updated)
    frozen = unpack(params)

    out = acts[-1]
    delta = (out - target) * out * (1.0 - out)
    for li in reversed(range(len(layers))):
        w, b = layers[li]
        grad_w = np.outer(delta, acts[li])
        grad_b = delta
        if li > 0:
            prev = acts[li]
            delta = (frozen[li][0].T @ delta) * prev * (1.0 - prev)
        w -= learning_rate * grad_w
        b -= learning_rate * grad_b
    return freeze(updated)


def pretrain(
    params: np.ndarray,
    rng: np.random.Generator,
    grid: VoxelGrid,
    start,
    dest,
    learning_rate: float = config.LEARNING_RATE,
    moves: int = config.NAV_TOTAL_MOVES,
) -> tuple[np.ndarray, float]:
    """Supervised pass along a jittered straight line from start to dest.

    Returns the updated parameters and the squared error after the last
    update, which is only a progress diagnostic.
    """
    start = Vec3.of(start)
    span = Vec3.of(dest) - start
    query = PathQuery(start, dest)
    error = 0.0
    for i in range(moves):
        jitter = Vec3.random(rng, -config.PRETRAIN_JITTER, config.PRETRAIN_JITTER)
        query.update(start + span * (i / moves) + jitter)
        d = query.direction
        target = 0.5 * (1.0 + np.array([d.x, d.y, d.z], dtype=np.float32))
        inputs = encode_inputs(query, grid.half_extent, grid.grid_size)
        params = backprop(params, inputs, target, learning_rate)
        error = float(np.sum((forward(params, inputs) - target) ** 2))
    return params, error


def evolve(
    population: list[np.ndarray],
    rng: np.random.Generator,
    grid: VoxelGrid,
    start,
    dest,
    elite: int = config.ELITE,
) -> tuple[list[np.ndarray], list[float]]:
    """One elitist generation: keep the best, refill with mutated offspring.

    Returns the next population and the scores of the current one, best first.
    """
    scores = [fitness(p, grid, start, dest) for p in population]
    order = sorted(range(len(population)), key=lambda i: scores[i], reverse=True)
    ranked = [population[i] for i in order]
    elite = max(1, min(elite, len(ranked)))
    parents = ranked[: max(2, len(ranked) // 2)]

    children = list(ranked[:elite])
    while len(children) < len(population):
        a = parents[rng.integers(len(parents))]
        b = parents[rng.integers(len(parents))]
        children.append(mutate(breed(a, b, rng), rng))

    best = scores[order[0]]
    logger.info("generation best %.3f, mean %.3f", best, float(np.mean(scores)))
    return children, [scores[i] for i in order]
