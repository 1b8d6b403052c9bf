# config.py
import tomllib
from pathlib import Path

def _get_version():
    """Read sparsematch's version from pyproject.toml"""
    try:
        pyproject_path = Path(__file__).parent / "pyproject.toml"
        with open(pyproject_path, "rb") as f:
            data = tomllib.load(f)
        return data["project"]["version"]
    except (OSError, KeyError, tomllib.TOMLDecodeError):
        return "unknown"  # Installed without pyproject.toml alongside

VERSION = _get_version()
VRAM_SAFETY_FACTOR = 0.85 # What percentage of free VRAM a similarity block may use
FORCE_CPU_MODE = False
DEFAULT_DTYPE = "float32"
SUPPORTED_DTYPES = ("float32", "float64")
FRAME_WIDTH = 70 # For CLI headings

class PathConfig:
    BASE_DIR = Path(__file__).parent

    @classmethod
    def get_config_path(cls):
        return cls.BASE_DIR / "config.json"
