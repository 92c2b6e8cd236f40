from __future__ import annotations

# World layout
GRID_SIZE = 64
CHUNK_SIZE = 8
VIEW_RADIUS = 2

# Material ids; -1 is air and 0..15 are solid materials.
BLOCK_AIR = -1
BLOCK_BEDROCK = 0
BLOCK_STONE = 1
BLOCK_DIRT = 2
BLOCK_GRASS = 3
BLOCK_SAND = 4
MATERIAL_MIN = -1
MATERIAL_MAX = 15

# Terrain heightmap (Perlin noise)
NOISE_SCALE = 0.045
NOISE_OCTAVES = 4
NOISE_PERSISTENCE = 0.5
NOISE_LACUNARITY = 2.0
HEIGHT_BASE = -6
HEIGHT_AMP = 8
TOPSOIL_DEPTH = 3

# Physics
GRAVITY = (0.0, -10.0, 0.0)
TARGET_SUBSTEP = 0.0016667
BASE_DAMPING = 13.25
DAMPING_PER_STEP = 0.325
FRICTION = 20.0
ELASTICITY = 0.1
BODY_MASS = 10.0
PLAYER_HALF_EXTENT = (0.45, 0.95, 0.45)
MOB_HALF_EXTENT = (0.45, 0.45, 0.45)

# Player controls
MOVE_FORCE = 1e2
JUMP_FORCE = 4000.0
JUMP_VELOCITY_LIMIT = 1.0
GRAPPLE_FORCE = 1e3
GRAPPLE_NEAR = 20.0
EDIT_REACH = 6.0
DIG_REACH = 100.0
TARGET_PROJECT = 3.0
PREVIEW_MAX_SCALE = 5
DESTROY_INTENSITY = 5.0

# Navigation
NAV_INPUTS = 7
NAV_HIDDEN = 3
NAV_OUTPUTS = 3
NAV_STEP_SIZE = 0.5
NAV_GOAL_RADIUS = 0.25
NAV_MOVING_THRESHOLD = 0.1
NAV_TOTAL_MOVES = 20
NAV_SPEED_SCALE = 2.75
NAV_SPEED_KNEE = 3.0
NAV_SPEED_BIAS = 1.1

# Training
LEARNING_RATE = 0.5
PRETRAIN_JITTER = 0.5
MUTATION_RATE = 0.1
MUTATION_SCALE = 0.25
POPULATION = 24
ELITE = 4

# Headless loop
FPS_LIMIT = 60
