# core/utilities/gpu_utils.py
import logging
import traceback
from contextlib import contextmanager
import torch
from config import VRAM_SAFETY_FACTOR

logger = logging.getLogger(__name__)

# Target corpus width used when reporting block sizes in diagnostics
REFERENCE_TARGET_ROWS = 100_000

def get_gpu_info():
    """Describe every CUDA device and its free memory, or None without CUDA."""
    if not torch.cuda.is_available():
        return None

    devices = []
    for index in range(torch.cuda.device_count()):
        props = torch.cuda.get_device_properties(index)
        free_vram, total_vram = torch.cuda.mem_get_info(index)
        devices.append({
            "index": index,
            "name": props.name,
            "free_vram": free_vram,
            "total_vram": total_vram,
            "compute_capability": f"{props.major}.{props.minor}"
        })
    return devices

def recommend_max_rows(columns, dtype_size=4, safety_factor=VRAM_SAFETY_FACTOR, device_index=0):
    """
    Recommend how many dense similarity rows fit in free VRAM at once.

    Each output row holds `columns` values; the sparse product, its dense
    copy and the host transfer each need about that much.
    """
    gpu_info = get_gpu_info()
    if not gpu_info:
        return 0  # No GPU available

    device = next((gpu for gpu in gpu_info if gpu["index"] == device_index), gpu_info[0])
    bytes_per_row = max(1, columns) * dtype_size * 3
    usable_vram = device["free_vram"] * safety_factor

    return max(1, int(usable_vram // bytes_per_row))

def release_device_memory(device):
    """Return cached CUDA blocks held by this process to the driver."""
    device = torch.device(device)
    if device.type == "cuda" and torch.cuda.is_available():
        torch.cuda.synchronize(device)
        torch.cuda.empty_cache()

@contextmanager
def device_memory_scope(device):
    """
    Scope device buffers to a block of work.

    On exit, normal or not, the CUDA cache is emptied. When an exception
    propagates, the finished frames in its traceback are cleared first so
    their tensors do not outlive the call.
    """
    try:
        yield torch.device(device)
    except BaseException as e:
        traceback.clear_frames(e.__traceback__)
        raise
    finally:
        release_device_memory(device)
        logger.debug(f"Released device memory on {device}")

def describe_device():
    """Get a one-line description of the compute device."""
    if torch.cuda.is_available():
        device = torch.cuda.get_device_name(0)
        mem = torch.cuda.get_device_properties(0).total_memory / (1024**3)
        return f"GPU: {device} ({mem:.1f}GB VRAM)"
    return "No GPU detected"

def print_gpu_info(target_rows=REFERENCE_TARGET_ROWS):
    """Print each CUDA device with the similarity block it could hold."""
    gpu_info = get_gpu_info()
    if not gpu_info:
        print("  No CUDA device; similarity runs on the CPU backend")
        return

    print("  CUDA devices:")
    for gpu in gpu_info:
        rows = recommend_max_rows(target_rows, device_index=gpu["index"])
        print(f"    cuda:{gpu['index']} {gpu['name']} (compute {gpu['compute_capability']})")
        print(f"      {gpu['free_vram']/(1024**3):.1f} of {gpu['total_vram']/(1024**3):.1f} GB free; "
              f"{rows:,} query rows per block against {target_rows:,} targets")
