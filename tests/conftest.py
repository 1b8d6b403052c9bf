"""
Pytest configuration for sparsematch tests.
"""

import numpy as np
import pytest
import scipy.sparse as sp

from config import PathConfig
from core.similarity_engine import SparseOps, SparseOpsGPU
from core.utilities.config_manager import config_manager


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the settings singleton at a throwaway config.json."""
    config_path = tmp_path / "config.json"
    monkeypatch.setattr(PathConfig, "get_config_path", classmethod(lambda cls: config_path))
    config_manager.load()
    yield config_manager
    monkeypatch.undo()
    config_manager.load()


@pytest.fixture(params=["cpu", "torch-cpu"])
def backend(request):
    """Both backends; the torch one runs on the CPU device so it needs no GPU."""
    if request.param == "cpu":
        return SparseOps()
    return SparseOpsGPU(device="cpu")


@pytest.fixture
def tfidf_like():
    """Non-negative sparse rows with no all-zero row."""
    weights = sp.random(12, 40, density=0.15, format="csr", random_state=7)
    return sp.csr_matrix(weights + sp.eye(12, 40, format="csr"))


@pytest.fixture
def scenario():
    query = sp.csr_matrix(np.array([[1.0, 1.0, 0.0]]))
    target = sp.csr_matrix(np.array([
        [1.0, 0.0, 0.0],
        [0.0, 1.0, 0.0],
        [1.0, 1.0, 0.0],
    ]))
    return query, target
