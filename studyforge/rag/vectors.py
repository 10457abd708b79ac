"""Fixed-dimension embedding vectors.

Every vector in the corpus has the same dimensionality. ``Embedding`` checks
this when it is built, so a wrong-sized vector fails where it enters the
system instead of at query time.
"""
import hashlib
from typing import Iterable, List, Union

import numpy as np

VectorLike = Union[Iterable[float], np.ndarray]


class Embedding:
    """Immutable float32 vector of a known length."""

    __slots__ = ("_values",)

    def __init__(self, values: VectorLike, dimension: int):
        """Build a vector and check its shape.

        Args:
            values: Vector components
            dimension: Required number of components

        Raises:
            ValueError: If the vector is not 1-D, has the wrong length, or
                contains NaN/inf
        """
        array = np.array(values, dtype=np.float32)

        if array.ndim != 1:
            raise ValueError(f"Embedding must be 1-D, got shape {array.shape}")
        if array.shape[0] != dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {dimension}, "
                f"got {array.shape[0]}"
            )
        if not np.all(np.isfinite(array)):
            raise ValueError("Embedding contains non-finite values")

        array.setflags(write=False)
        self._values = array

    @property
    def dimension(self) -> int:
        return self._values.shape[0]

    @property
    def values(self) -> np.ndarray:
        """Read-only numpy view of the components."""
        return self._values

    def tolist(self) -> List[float]:
        return self._values.tolist()

    def to_bytes(self) -> bytes:
        """Little-endian float32 serialization, used for storage and keys."""
        return self._values.astype("<f4").tobytes()

    @classmethod
    def from_bytes(cls, blob: bytes, dimension: int) -> "Embedding":
        return cls(np.frombuffer(blob, dtype="<f4"), dimension)

    def digest(self) -> str:
        """Canonical hex digest of the vector; equal vectors share a digest."""
        return hashlib.sha256(self.to_bytes()).hexdigest()

    def normalized(self) -> np.ndarray:
        """Unit-length copy; a zero vector stays zero."""
        return normalize_rows(self._values[np.newaxis, :])[0]

    def __len__(self) -> int:
        return self.dimension

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Embedding):
            return NotImplemented
        return np.array_equal(self._values, other._values)

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __repr__(self) -> str:
        return f"Embedding(dimension={self.dimension})"


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """L2-normalize each row; all-zero rows are left as zeros."""
    matrix = np.asarray(matrix, dtype=np.float32)
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    safe = np.where(norms > 0, norms, 1.0)
    return (matrix / safe).astype(np.float32)


def cosine_distance(a: Embedding, b: Embedding) -> float:
    """``1 - cosine_similarity``; a zero vector has similarity 0 with anything."""
    if a.dimension != b.dimension:
        raise ValueError(
            f"Cannot compare vectors of dimension {a.dimension} and {b.dimension}"
        )
    similarity = float(np.dot(a.normalized(), b.normalized()))
    return 1.0 - similarity
