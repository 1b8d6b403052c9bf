# core/utilities/config_manager.py
import json
import logging
from config import PathConfig, FORCE_CPU_MODE, DEFAULT_DTYPE, SUPPORTED_DTYPES

logger = logging.getLogger(__name__)

def _check_flag(value):
    if not isinstance(value, bool):
        raise ValueError(f"expected true or false, got {value!r}")
    return value

def _check_dtype(value):
    if value not in SUPPORTED_DTYPES:
        raise ValueError(f"Invalid dtype: {value} (expected one of {', '.join(SUPPORTED_DTYPES)})")
    return value

def _check_max_rows(value):
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"max_rows_per_chunk must be a positive integer or None, got {value!r}")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"max_rows_per_chunk must be a positive integer or None, got {value!r}")
    if value < 1:
        raise ValueError("max_rows_per_chunk must be a positive integer or None")
    return value

def _check_top_k(value):
    if isinstance(value, bool):
        raise ValueError(f"top_k must be an integer, got {value!r}")
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"top_k must be an integer, got {value!r}")
    return max(1, min(10_000, value))

class ConfigManager:
    DEVICE_CHOICES = {
        'auto': 'Automatic (GPU when available)',
        'cpu': 'CPU (scipy.sparse)',
        'cuda': 'GPU (torch sparse)'
    }

    DEFAULT_SETTINGS = {
        'force_cpu': FORCE_CPU_MODE,
        'force_gpu': False,
        'dtype': DEFAULT_DTYPE,
        'show_progress': False,
        'max_rows_per_chunk': None,  # None = size blocks from free VRAM
        'top_k': 1  # How many targets to report per query row
    }

    # Same checks the setters apply
    VALIDATORS = {
        'force_cpu': _check_flag,
        'force_gpu': _check_flag,
        'dtype': _check_dtype,
        'show_progress': _check_flag,
        'max_rows_per_chunk': _check_max_rows,
        'top_k': _check_top_k
    }

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance.load()
        return cls._instance

    def load(self):
        self.config_path = PathConfig.get_config_path()
        try:
            if self.config_path.exists():
                with open(self.config_path, 'r') as f:
                    self.settings = json.load(f)
                if not isinstance(self.settings, dict):
                    raise ValueError("config root must be an object")

                # Ensure new settings exist
                for key, default in self.DEFAULT_SETTINGS.items():
                    if key not in self.settings:
                        self.settings[key] = default
                self._validate_settings()
            else:
                self.settings = self.DEFAULT_SETTINGS.copy()
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {self.config_path} ({e}); using defaults")
            self.settings = self.DEFAULT_SETTINGS.copy()

    def _validate_settings(self):
        """Replace hand-edited values the setters would reject with defaults."""
        for key, check in self.VALIDATORS.items():
            try:
                self.settings[key] = check(self.settings[key])
            except ValueError as e:
                logger.warning(f"Invalid {key} in {self.config_path} ({e}); using default")
                self.settings[key] = self.DEFAULT_SETTINGS[key]

    def save(self):
        with open(self.config_path, 'w') as f:
            json.dump(self.settings, f, indent=2)

    def get(self, key, default=None):
        return self.settings.get(key, default)

    def set(self, key, value):
        self.settings[key] = value
        self.save()

    def get_force_cpu(self):
        return self.get('force_cpu', False)

    def set_force_cpu(self, value):
        value = bool(value)
        if value and self.get_force_gpu():
            self.settings['force_gpu'] = False
        self.set('force_cpu', value)

    def get_force_gpu(self):
        return self.get('force_gpu', False)

    def set_force_gpu(self, value):
        value = bool(value)
        if value and self.get_force_cpu():
            self.settings['force_cpu'] = False
        self.set('force_gpu', value)

    def get_device_mode(self) -> str:
        """Resolve the force flags into one of DEVICE_CHOICES."""
        if self.get_force_cpu():
            return 'cpu'
        if self.get_force_gpu():
            return 'cuda'
        return 'auto'

    def get_dtype(self) -> str:
        return self.get('dtype', DEFAULT_DTYPE)

    def set_dtype(self, value: str):
        self.set('dtype', _check_dtype(value))

    def get_show_progress(self) -> bool:
        return bool(self.get('show_progress', False))

    def set_show_progress(self, value):
        self.set('show_progress', bool(value))

    def get_max_rows_per_chunk(self):
        """Fixed GPU block height, or None to size blocks from free VRAM."""
        return self.get('max_rows_per_chunk', None)

    def set_max_rows_per_chunk(self, value):
        self.set('max_rows_per_chunk', _check_max_rows(value))

    def get_top_k(self) -> int:
        """Get number of matches to report per query row."""
        return self.get('top_k', 1)

    def set_top_k(self, value: int):
        """Set number of matches (1-10k)."""
        self.set('top_k', _check_top_k(value))

    def reset(self):
        """Restore every setting to its default."""
        self.settings = self.DEFAULT_SETTINGS.copy()
        self.save()

# Singleton access
config_manager = ConfigManager()
