"""
Configuration, validation and GPU helper utilities.
"""

import json

import numpy as np
import pytest
import scipy.sparse as sp
import torch

from core.utilities import gpu_utils
from core.utilities.matrix_validation import validate_feature_matrix


class TestConfigManager:

    def test_defaults_without_file(self, isolated_config):
        assert isolated_config.get_device_mode() == "auto"
        assert isolated_config.get_dtype() == "float32"
        assert isolated_config.get_max_rows_per_chunk() is None
        assert isolated_config.get_top_k() == 1

    def test_settings_persist(self, isolated_config):
        isolated_config.set_dtype("float64")
        isolated_config.load()
        assert isolated_config.get_dtype() == "float64"
        saved = json.loads(isolated_config.config_path.read_text())
        assert saved["dtype"] == "float64"

    def test_missing_keys_filled_from_defaults(self, isolated_config):
        isolated_config.config_path.write_text(json.dumps({"force_cpu": True}))
        isolated_config.load()
        assert isolated_config.get_device_mode() == "cpu"
        assert isolated_config.get_dtype() == "float32"

    def test_corrupt_file_falls_back_to_defaults(self, isolated_config):
        isolated_config.config_path.write_text("{not json")
        isolated_config.load()
        assert isolated_config.settings == isolated_config.DEFAULT_SETTINGS

    @pytest.mark.parametrize("key, bad_value", [
        ("dtype", "int8"),
        ("max_rows_per_chunk", "abc"),
        ("max_rows_per_chunk", 0),
        ("force_cpu", "yes"),
        ("show_progress", 1),
        ("top_k", [3]),
    ])
    def test_invalid_loaded_value_falls_back_to_default(self, isolated_config, key, bad_value):
        isolated_config.config_path.write_text(json.dumps({key: bad_value}))
        isolated_config.load()
        assert isolated_config.get(key) == isolated_config.DEFAULT_SETTINGS[key]

    def test_valid_loaded_values_are_kept(self, isolated_config):
        isolated_config.config_path.write_text(json.dumps({
            "dtype": "float64", "max_rows_per_chunk": "128", "top_k": 50000, "force_gpu": True
        }))
        isolated_config.load()
        assert isolated_config.get_dtype() == "float64"
        assert isolated_config.get_max_rows_per_chunk() == 128
        assert isolated_config.get_top_k() == 10_000
        assert isolated_config.get_device_mode() == "cuda"

    def test_force_flags_are_exclusive(self, isolated_config):
        isolated_config.set_force_cpu(True)
        isolated_config.set_force_gpu(True)
        assert isolated_config.get_force_cpu() is False
        assert isolated_config.get_device_mode() == "cuda"

    def test_invalid_dtype(self, isolated_config):
        with pytest.raises(ValueError):
            isolated_config.set_dtype("float16")

    def test_invalid_chunk_rows(self, isolated_config):
        with pytest.raises(ValueError):
            isolated_config.set_max_rows_per_chunk(0)
        isolated_config.set_max_rows_per_chunk(None)
        assert isolated_config.get_max_rows_per_chunk() is None

    def test_top_k_clamped(self, isolated_config):
        isolated_config.set_top_k(-4)
        assert isolated_config.get_top_k() == 1


class TestValidateFeatureMatrix:

    def test_valid_sparse(self, tfidf_like):
        assert validate_feature_matrix(tfidf_like) == (True, "Valid")

    def test_valid_boolean_presence_matrix(self):
        assert validate_feature_matrix(np.eye(3, dtype=bool))[0]

    def test_infinite_value(self):
        is_valid, message = validate_feature_matrix(sp.csr_matrix([[np.inf, 0.0]]), "query")
        assert not is_valid
        assert message.startswith("query")

    def test_non_numeric(self):
        is_valid, message = validate_feature_matrix([["a", "b"]])
        assert not is_valid
        assert "non-numeric" in message

    def test_complex(self):
        assert not validate_feature_matrix(np.eye(2, dtype=complex))[0]

    def test_wrong_rank(self):
        assert not validate_feature_matrix(np.zeros((2, 2, 2)))[0]


class TestGpuUtils:

    def test_no_cuda(self, monkeypatch):
        monkeypatch.setattr(torch.cuda, "is_available", lambda: False)
        assert gpu_utils.get_gpu_info() is None
        assert gpu_utils.recommend_max_rows(1000) == 0
        assert gpu_utils.describe_device() == "No GPU detected"

    def test_recommend_max_rows_from_free_vram(self, monkeypatch):
        monkeypatch.setattr(gpu_utils, "get_gpu_info", lambda: [{"index": 0, "free_vram": 1200}])
        # 10 columns * 4 bytes * 3 buffers = 120 bytes per row
        assert gpu_utils.recommend_max_rows(10, dtype_size=4, safety_factor=1.0) == 10

    def test_recommend_max_rows_uses_requested_device(self, monkeypatch):
        devices = [{"index": 0, "free_vram": 1200}, {"index": 1, "free_vram": 2400}]
        monkeypatch.setattr(gpu_utils, "get_gpu_info", lambda: devices)
        assert gpu_utils.recommend_max_rows(10, safety_factor=1.0, device_index=1) == 20

    def test_print_gpu_info_reports_block_size(self, monkeypatch, capsys):
        devices = [{
            "index": 0,
            "name": "Test GPU",
            "free_vram": 2 * 1024**3,
            "total_vram": 4 * 1024**3,
            "compute_capability": "8.6",
        }]
        monkeypatch.setattr(gpu_utils, "get_gpu_info", lambda: devices)
        gpu_utils.print_gpu_info(target_rows=1000)
        out = capsys.readouterr().out
        assert "cuda:0 Test GPU (compute 8.6)" in out
        assert "2.0 of 4.0 GB free" in out
        assert "against 1,000 targets" in out

    def test_print_gpu_info_without_cuda(self, monkeypatch, capsys):
        monkeypatch.setattr(gpu_utils, "get_gpu_info", lambda: None)
        gpu_utils.print_gpu_info()
        assert "CPU backend" in capsys.readouterr().out

    def test_release_is_noop_on_cpu(self):
        gpu_utils.release_device_memory("cpu")
