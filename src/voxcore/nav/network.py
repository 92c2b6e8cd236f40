"""Fixed-topology feed-forward network used for agent steering.

Parameters are one flat float32 vector. Per layer it holds the row-major
weight matrix (out x in) followed by the bias vector. The serialized form is
that vector as little-endian float32 with no header, so the loader must know
the topology in advance.
"""
from __future__ import annotations

import numpy as np

from .. import config
from ..errors import WeightFormatError

LAYERS = (config.NAV_INPUTS, config.NAV_HIDDEN, config.NAV_OUTPUTS)
_WIRE_DTYPE = np.dtype("<f4")


def param_count(layers=LAYERS) -> int:
    return sum(n_out * n_in + n_out for n_in, n_out in zip(layers, layers[1:]))


def sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-x))


def freeze(params, layers=LAYERS) -> np.ndarray:
    """Read-only float32 copy of `params`, checked against the topology."""
    arr = np.array(params, dtype=np.float32).ravel()
    expected = param_count(layers)
    if arr.shape[0] != expected:
        raise WeightFormatError(f"expected {expected} parameters, got {arr.shape[0]}")
    arr.flags.writeable = False
    return arr


def unpack(params: np.ndarray, layers=LAYERS) -> list[tuple[np.ndarray, np.ndarray]]:
    """Per-layer (weights, bias) views into `params`."""
    out = []
    at = 0
    for n_in, n_out in zip(layers, layers[1:]):
        w = params[at : at + n_out * n_in].reshape(n_out, n_in)
        at += n_out * n_in
        b = params[at : at + n_out]
        at += n_out
        out.append((w, b))
    return out


def activations(params: np.ndarray, inputs: np.ndarray, layers=LAYERS) -> list[np.ndarray]:
    acts = [np.asarray(inputs, dtype=np.float32)]
    for w, b in unpack(params, layers):
        acts.append(sigmoid(w @ acts[-1] + b))
    return acts


def forward(params: np.ndarray, inputs: np.ndarray, layers=LAYERS) -> np.ndarray:
    return activations(params, inputs, layers)[-1]


def serialize(params: np.ndarray) -> bytes:
    return np.asarray(params, dtype=_WIRE_DTYPE).tobytes()


def deserialize(data: bytes, layers=LAYERS) -> np.ndarray:
    expected = param_count(layers) * _WIRE_DTYPE.itemsize
    if len(data) != expected:
        raise WeightFormatError(f"weight stream is {len(data)} bytes, topology needs {expected}")
    return freeze(np.frombuffer(data, dtype=_WIRE_DTYPE), layers)


class Network:
    def __init__(self, params, layers=LAYERS) -> None:
        self.layers = tuple(layers)
        self.params = freeze(params, self.layers)
        # Layer views, built on first use.
        self._finalized: list[tuple[np.ndarray, np.ndarray]] | None = None

    @classmethod
    def zeros(cls, layers=LAYERS) -> "Network":
        return cls(np.zeros(param_count(layers), dtype=np.float32), layers)

    @classmethod
    def from_bytes(cls, data: bytes, layers=LAYERS) -> "Network":
        return cls(deserialize(data, layers), layers)

    def reset(self) -> None:
        self._finalized = None

    def load(self, data: bytes) -> None:
        """Replace the parameters in place; the cached layer views go with them."""
        self.params = deserialize(data, self.layers)
        self.reset()

    def calculate(self, inputs: np.ndarray) -> np.ndarray:
        if self._finalized is None:
            self._finalized = unpack(self.params, self.layers)
        x = np.asarray(inputs, dtype=np.float32)
        for w, b in self._finalized:
            x = sigmoid(w @ x + b)
        return x

    def serialize(self) -> bytes:
        return serialize(self.params)
