# core/similarity_engine/engine.py
"""
Public entry point for sparse cosine similarity.

The engine validates its inputs once, picks a backend (scipy.sparse on the
host or torch sparse tensors on a GPU) and delegates the arithmetic to it.
Both backends produce the same matrix up to floating-point summation order.
"""
import logging
from typing import Optional, Union
import numpy as np
import scipy.sparse as sp
import torch
from core.utilities.config_manager import config_manager
from core.utilities.matrix_validation import validate_feature_matrix
from .errors import DimensionMismatch, EmptyInput, InvalidFeatureMatrix
from .sparse_math import SparseOps
from .sparse_math_gpu import SparseOpsGPU

logger = logging.getLogger(__name__)

Backend = Union[SparseOps, SparseOpsGPU]

GPU_DEVICE_NAMES = ("cuda", "gpu")

def select_backend(device: Optional[str] = None, dtype: Optional[str] = None) -> Backend:
    """
    Pick the backend for one call.

    Args:
        device: 'cpu', 'cuda', 'cuda:N' or 'gpu'; None defers to the
            configured force flags, then to CUDA availability
        dtype: 'float32' or 'float64'; None uses the configured dtype

    Returns:
        A SparseOps or SparseOpsGPU instance
    """
    dtype = dtype or config_manager.get_dtype()
    mode = device or config_manager.get_device_mode()

    if mode == "auto":
        mode = "cuda" if torch.cuda.is_available() else "cpu"
        require_cuda = False
    else:
        # An explicit GPU request must not silently run on the CPU
        require_cuda = True

    if mode == "cpu":
        logger.debug("Using CPU backend (scipy.sparse)")
        return SparseOps(dtype=dtype)

    if mode == "gpu":
        mode = "cuda"
    if not mode.startswith("cuda"):
        raise ValueError(f"Unknown device: {device}")

    logger.debug(f"Using GPU backend on {mode}")
    return SparseOpsGPU(
        device=mode,
        dtype=dtype,
        max_rows_per_chunk=config_manager.get_max_rows_per_chunk(),
        show_progress=config_manager.get_show_progress(),
        require_cuda=require_cuda
    )

def _check_input(matrix, name: str):
    is_valid, message = validate_feature_matrix(matrix, name)
    if not is_valid:
        raise InvalidFeatureMatrix(message)
    if not sp.issparse(matrix):
        matrix = np.asarray(matrix)
    if matrix.shape[0] == 0:
        raise EmptyInput(name, matrix.shape)
    return matrix

def cosine_similarity(query, target,
                      device: Optional[str] = None,
                      dtype: Optional[str] = None,
                      backend: Optional[Backend] = None) -> np.ndarray:
    """
    Pairwise cosine similarity between two sets of sparse feature vectors.

    Args:
        query: Sparse matrix shape (m, k), e.g. TF-IDF rows of query addresses
        target: Sparse matrix shape (n, k) over the same vocabulary
        device: Backend device, see select_backend
        dtype: Output precision, see select_backend
        backend: Pre-built backend instance; overrides device and dtype

    Returns:
        Dense array shape (m, n); entry (i, j) is the cosine similarity of
        query row i and target row j. Rows with an all-zero feature vector
        score exactly 0 against everything.

    Raises:
        InvalidFeatureMatrix: an input is not 2-D, numeric and finite
        EmptyInput: an input has zero rows
        DimensionMismatch: column counts differ
        DeviceUnavailable: a GPU device was requested without CUDA
    """
    query = _check_input(query, "query")
    target = _check_input(target, "target")

    if query.shape[1] != target.shape[1]:
        raise DimensionMismatch(query.shape, target.shape)

    if backend is None:
        backend = select_backend(device=device, dtype=dtype)

    return backend.cosine_similarity(query, target)
