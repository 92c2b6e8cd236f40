from .controller import NavController, avoid_collisions, decode_output, encode_inputs, steer
from .network import LAYERS, Network, param_count
from .path import PathQuery

__all__ = [
    "NavController",
    "Network",
    "PathQuery",
    "LAYERS",
    "param_count",
    "steer",
    "avoid_collisions",
    "encode_inputs",
    "decode_output",
]
