# core/similarity_engine/__init__.py
"""
Similarity Engine Package
"""
from .engine import cosine_similarity, select_backend
from .errors import (
    SimilarityError,
    DimensionMismatch,
    EmptyInput,
    InvalidFeatureMatrix,
    DeviceUnavailable
)
from .ranking import top_matches
from .sparse_math import SparseOps
from .sparse_math_gpu import SparseOpsGPU

__all__ = [
    'cosine_similarity',
    'select_backend',
    'top_matches',
    'SparseOps',
    'SparseOpsGPU',
    'SimilarityError',
    'DimensionMismatch',
    'EmptyInput',
    'InvalidFeatureMatrix',
    'DeviceUnavailable'
]
