# core/similarity_engine/sparse_math.py
"""
Sparse matrix math for similarity calculations on the host CPU.
"""
import logging
from typing import Tuple
import numpy as np
import scipy.sparse as sp
from config import DEFAULT_DTYPE

logger = logging.getLogger(__name__)

# Norms and normalization always run at this precision; only the output
# takes the backend dtype
WORK_DTYPE = np.float64

def scaled_rows(matrix) -> Tuple[sp.csr_matrix, np.ndarray, np.ndarray, np.ndarray]:
    """
    Divide every row by its largest absolute value.

    Squaring the scaled values can neither underflow nor overflow, whatever
    the magnitude of the original weights.

    Returns:
        Tuple of (scaled copy, row index of every stored value, row peaks,
        L2 norms of the scaled rows). All-zero rows get a peak of 1.
    """
    scaled = sp.csr_matrix(matrix, dtype=WORK_DTYPE, copy=True)
    scaled.sum_duplicates()
    entry_rows = np.repeat(np.arange(scaled.shape[0]), np.diff(scaled.indptr))

    if scaled.shape[1] == 0:
        peaks = np.ones(scaled.shape[0])
    else:
        peaks = abs(scaled).max(axis=1).toarray().ravel()
        peaks = np.where(peaks > 0, peaks, 1.0)
    scaled.data /= peaks[entry_rows]

    squared = np.bincount(entry_rows, weights=scaled.data ** 2, minlength=scaled.shape[0])
    return scaled, entry_rows, peaks, np.sqrt(squared)

class SparseOps:
    """Cosine similarity over scipy.sparse CSR matrices."""

    name = "cpu"

    def __init__(self, dtype: str = DEFAULT_DTYPE):
        self.dtype = np.dtype(dtype)

    def to_sparse(self, matrix) -> sp.csr_matrix:
        """
        Convert any sparse matrix or 2-D array-like to float64 CSR.

        The caller's object is never modified; scipy copies whenever the
        format or dtype changes.
        """
        if sp.issparse(matrix):
            return sp.csr_matrix(matrix, dtype=WORK_DTYPE)
        return sp.csr_matrix(np.asarray(matrix, dtype=WORK_DTYPE))

    @staticmethod
    def row_norms(matrix) -> np.ndarray:
        """L2 norm of every row, shape (rows,)."""
        _, _, peaks, norms = scaled_rows(matrix)
        return peaks * norms

    @staticmethod
    def normalize_rows(matrix) -> sp.csr_matrix:
        """Copy of `matrix` with every non-zero row scaled to unit L2 length."""
        scaled, entry_rows, _, norms = scaled_rows(matrix)
        # Scaled non-zero rows have a norm of at least 1
        scaled.data /= np.where(norms > 0, norms, 1.0)[entry_rows]
        return scaled

    @staticmethod
    def dot_products(query: sp.csr_matrix, target: sp.csr_matrix) -> sp.csr_matrix:
        """Sparse query · target^T, shape (m, n). Neither input is densified."""
        return sp.csr_matrix(query @ target.T)

    def cosine_similarity(self, query, target) -> np.ndarray:
        """
        Compute cosine similarity between every query row and every target row.

        Rows are normalized to unit length first, so the dot products are the
        similarities. All-zero rows stay zero and score exactly 0.

        Args:
            query: Sparse matrix shape (m, k)
            target: Sparse matrix shape (n, k)

        Returns:
            Dense array of similarities shape (m, n)
        """
        query = self.normalize_rows(self.to_sparse(query))
        target = self.normalize_rows(self.to_sparse(target))

        dots = self.dot_products(query, target)
        similarities = dots.toarray()
        np.clip(similarities, -1.0, 1.0, out=similarities)

        logger.debug(f"CPU cosine similarity {query.shape} x {target.shape} "
                     f"({dots.nnz:,} non-zero dot products)")
        return similarities.astype(self.dtype, copy=False)
