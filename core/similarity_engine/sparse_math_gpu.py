# core/similarity_engine/sparse_math_gpu.py
import logging
import numpy as np
import scipy.sparse as sp
import torch
from tqdm import tqdm
from typing import Optional
from config import DEFAULT_DTYPE, VRAM_SAFETY_FACTOR
from core.utilities.gpu_utils import device_memory_scope, recommend_max_rows
from .errors import DeviceUnavailable

logger = logging.getLogger(__name__)

# Norms and normalization run at this precision; the dot products and
# output use the backend dtype
WORK_DTYPE = torch.float64

class SparseOpsGPU:
    """GPU-accelerated cosine similarity over torch sparse COO tensors."""

    def __init__(self,
                 device: str = "cuda",
                 dtype: str = DEFAULT_DTYPE,
                 max_rows_per_chunk: Optional[int] = None,
                 show_progress: bool = False,
                 require_cuda: bool = False):
        """
        Initialize the GPU backend.

        Args:
            device: Torch device to run on ('cuda', 'cuda:1' or 'cpu')
            dtype: 'float32' or 'float64'
            max_rows_per_chunk: Query rows per block (None = size from free VRAM)
            show_progress: Show a progress bar over blocks
            require_cuda: Raise instead of falling back when CUDA is missing
        """
        requested = torch.device(device)
        if requested.type == "cuda" and not torch.cuda.is_available():
            if require_cuda:
                raise DeviceUnavailable("CUDA was requested but no CUDA device is available")
            logger.warning("CUDA not available; running torch sparse kernels on CPU")
            requested = torch.device("cpu")
        self.device = requested
        self.np_dtype = np.dtype(dtype)
        self.dtype = getattr(torch, self.np_dtype.name)
        self.max_rows_per_chunk = max_rows_per_chunk
        self.show_progress = show_progress

    @property
    def name(self) -> str:
        """Device the kernels actually run on, after any CPU fallback."""
        return str(self.device)

    def to_device(self, matrix: sp.spmatrix, transpose: bool = False) -> torch.Tensor:
        """
        Upload a scipy sparse matrix as a coalesced float64 sparse COO tensor.

        With transpose=True the tensor holds matrix^T, built by swapping the
        index rows rather than transposing on the device.
        """
        coo = sp.coo_matrix(matrix)
        if transpose:
            rows, cols, shape = coo.col, coo.row, (coo.shape[1], coo.shape[0])
        else:
            rows, cols, shape = coo.row, coo.col, coo.shape

        indices = torch.from_numpy(np.vstack([rows, cols]).astype(np.int64))
        values = torch.from_numpy(coo.data.astype(np.float64))
        return torch.sparse_coo_tensor(
            indices, values, size=shape, dtype=WORK_DTYPE, device=self.device
        ).coalesce()

    def _scaled(self, tensor: torch.Tensor, dim: int):
        """
        Divide the values of each index group along `dim` by the group's
        largest absolute value, so squaring them cannot underflow or overflow.

        Returns:
            Tuple of (group of every value, scaled values, group peaks,
            L2 norms of the scaled groups). Empty groups get a peak of 1.
        """
        groups = tensor.indices()[dim]
        values = tensor.values().to(WORK_DTYPE)

        peaks = torch.zeros(tensor.shape[dim], dtype=WORK_DTYPE, device=self.device)
        peaks.scatter_reduce_(0, groups, values.abs(), reduce="amax")
        peaks = self._safe(peaks)
        scaled = values / peaks[groups]

        squared = torch.zeros(tensor.shape[dim], dtype=WORK_DTYPE, device=self.device)
        squared.index_add_(0, groups, scaled * scaled)
        return groups, scaled, peaks, squared.sqrt()

    def row_norms(self, tensor: torch.Tensor) -> torch.Tensor:
        """L2 norm of every row of a sparse tensor."""
        _, _, peaks, norms = self._scaled(tensor, 0)
        return peaks * norms

    def column_norms(self, tensor: torch.Tensor) -> torch.Tensor:
        """L2 norm of every column; the row norms of a transposed upload."""
        _, _, peaks, norms = self._scaled(tensor, 1)
        return peaks * norms

    def normalize(self, tensor: torch.Tensor, dim: int) -> torch.Tensor:
        """
        Scale each index group along `dim` to unit L2 length and cast to the
        backend dtype. dim=0 normalizes rows, dim=1 the columns of a
        transposed upload.
        """
        groups, scaled, _, norms = self._scaled(tensor, dim)
        unit = scaled / self._safe(norms)[groups]
        return torch.sparse_coo_tensor(
            tensor.indices(), unit.to(self.dtype), size=tensor.shape, device=self.device
        ).coalesce()

    @staticmethod
    def _safe(norms: torch.Tensor) -> torch.Tensor:
        # All-zero rows have no stored values, so dividing by 1 keeps them at 0
        return torch.where(norms > 0, norms, torch.ones_like(norms))

    def _block_rows(self, query_rows: int, target_rows: int) -> int:
        if self.max_rows_per_chunk:
            return max(1, int(self.max_rows_per_chunk))
        if self.device.type == "cuda":
            recommended = recommend_max_rows(
                target_rows,
                dtype_size=self.np_dtype.itemsize,
                safety_factor=VRAM_SAFETY_FACTOR,
                device_index=self.device.index or 0
            )
            if recommended > 0:
                return min(recommended, max(1, query_rows))
        return max(1, query_rows)

    def cosine_similarity(self, query, target) -> np.ndarray:
        """
        Compute cosine similarity between every query row and every target row.

        Rows are normalized to unit length on the device, so the sparse dot
        products are the similarities. Each block of query rows is densified
        and copied back to host memory before the next block starts.

        Args:
            query: Sparse matrix shape (m, k)
            target: Sparse matrix shape (n, k)

        Returns:
            Dense array of similarities shape (m, n)
        """
        query = sp.csr_matrix(query)
        target = sp.csr_matrix(target)
        query_rows, target_rows = query.shape[0], target.shape[0]

        block_rows = self._block_rows(query_rows, target_rows)
        similarities = np.empty((query_rows, target_rows), dtype=self.np_dtype)
        logger.debug(f"{self.device} cosine similarity {query.shape} x {target.shape} "
                     f"in blocks of {block_rows:,} rows")

        with device_memory_scope(self.device):
            self._fill_blocks(query, target, similarities, block_rows)

        return similarities

    def _fill_blocks(self, query, target, out, block_rows):
        target_t = self.normalize(self.to_device(target, transpose=True), dim=1)

        starts = range(0, query.shape[0], block_rows)
        for start in tqdm(starts, desc="Similarity blocks", unit="block",
                          disable=not self.show_progress):
            stop = min(start + block_rows, query.shape[0])
            block = self.normalize(self.to_device(query[start:stop]), dim=0)

            similarities = torch.sparse.mm(block, target_t).to_dense()
            similarities.clamp_(-1.0, 1.0)

            out[start:stop] = similarities.cpu().numpy()
