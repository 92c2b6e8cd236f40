from __future__ import annotations

import numpy as np

# One cell per visible voxel: voxel centre plus material id. The rendering
# collaborator expands each cell into a textured cube.
CELL_DTYPE = np.dtype(
    [("x", np.float32), ("y", np.float32), ("z", np.float32), ("atlas", np.int8)]
)


class CellMesh:
    def __init__(self, name: str = "") -> None:
        self.name = name
        self.cells = np.zeros((0,), dtype=CELL_DTYPE)

    def clear(self) -> None:
        self.cells = np.zeros((0,), dtype=CELL_DTYPE)

    def set(self, cells: np.ndarray) -> None:
        if cells.dtype != CELL_DTYPE:
            raise TypeError(f"expected cell dtype {CELL_DTYPE}, got {cells.dtype}")
        self.cells = cells

    def points(self) -> np.ndarray:
        """(N, 3) float32 array of cell centres."""
        return np.stack((self.cells["x"], self.cells["y"], self.cells["z"]), axis=-1)

    def __len__(self) -> int:
        return int(self.cells.shape[0])

    def __repr__(self) -> str:
        return f"CellMesh({self.name!r}, cells={len(self)})"


def make_cells(points: np.ndarray, atlas: np.ndarray) -> np.ndarray:
    cells = np.zeros((points.shape[0],), dtype=CELL_DTYPE)
    if points.shape[0]:
        cells["x"] = points[:, 0]
        cells["y"] = points[:, 1]
        cells["z"] = points[:, 2]
        cells["atlas"] = atlas
    return cells
