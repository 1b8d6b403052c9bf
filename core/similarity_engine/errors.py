# core/similarity_engine/errors.py
"""
Exceptions raised by the similarity engine.

Every failure here is structural: retrying the same call reproduces it.
"""
from typing import Tuple


class SimilarityError(ValueError):
    """Base class for invalid similarity inputs."""


class DimensionMismatch(SimilarityError):
    """Query and target do not share one feature space."""

    def __init__(self, query_shape: Tuple[int, int], target_shape: Tuple[int, int]):
        self.query_shape = tuple(query_shape)
        self.target_shape = tuple(target_shape)
        super().__init__(
            f"Feature dimension mismatch: query has {self.query_shape[1]} columns, "
            f"target has {self.target_shape[1]} columns"
        )


class EmptyInput(SimilarityError):
    """One of the inputs has no rows."""

    def __init__(self, name: str, shape: Tuple[int, int]):
        self.name = name
        self.shape = tuple(shape)
        super().__init__(f"{name} matrix has no rows (shape {self.shape})")


class InvalidFeatureMatrix(SimilarityError):
    """Input is not a usable 2-D numeric feature matrix."""


class DeviceUnavailable(RuntimeError):
    """A GPU backend was required but CUDA is not available."""
