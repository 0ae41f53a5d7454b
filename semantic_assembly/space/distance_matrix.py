"""Symmetric, zero-diagonal table of pairwise semantic distances."""

from collections.abc import Iterable, Mapping

import numpy as np

DEFAULT_DISTANCE = 0.5
_TOLERANCE = 1e-9


class DistanceMatrix:
    """Validated N×N distance table. Read-only once built."""

    def __init__(self, values: Iterable[Iterable[float]] | np.ndarray) -> None:
        arr = np.array(values, dtype=float)
        if arr.size == 0:
            arr = arr.reshape(0, 0)
        if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
            raise ValueError(f"Distance matrix must be square, got shape {arr.shape}")
        if not np.all(np.isfinite(arr)):
            raise ValueError("Distance matrix contains non-finite entries")
        if np.any(arr < 0):
            raise ValueError("Distance matrix contains negative entries")
        if np.any(np.abs(np.diag(arr)) > _TOLERANCE):
            raise ValueError("Distance matrix diagonal must be zero")
        if not np.allclose(arr, arr.T, atol=_TOLERANCE, rtol=0.0):
            raise ValueError("Distance matrix must be symmetric")
        arr.setflags(write=False)
        self._values = arr

    @classmethod
    def from_partial(
        cls,
        n: int,
        entries: Mapping[tuple[int, int], float],
        default: float = DEFAULT_DISTANCE,
    ) -> "DistanceMatrix":
        """Build from known pairs, mirroring each and filling the rest with ``default``.

        A pair seen twice keeps the last value written.
        """
        arr = np.full((n, n), float(default))
        np.fill_diagonal(arr, 0.0)
        for (i, j), distance in entries.items():
            if i == j:
                continue
            arr[i, j] = distance
            arr[j, i] = distance
        return cls(arr)

    @property
    def size(self) -> int:
        return self._values.shape[0]

    @property
    def values(self) -> np.ndarray:
        return self._values

    def __len__(self) -> int:
        return self.size

    def __getitem__(self, index):
        return self._values[index]

    def to_list(self) -> list[list[float]]:
        return self._values.tolist()

    def __repr__(self) -> str:
        return f"DistanceMatrix({self.size}x{self.size})"
