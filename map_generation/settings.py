# map_generation/settings.py

"""
================================================================================
RUN CONFIGURATION
================================================================================
Resolves the parameters of one generate_map.py run. Values come from three
places, in order of precedence: command-line flags, an optional JSON
configuration file, and the defaults in config.py.

Data Contract:
---------------
- Inputs:
    - RunConfig instances built from argparse results or JSON objects.
- Outputs:
    - A fully populated RunConfig (every field set except config_file).
- Side Effects: Reads the JSON config file; logs a warning when it is missing.
- Invariants: Every populated value satisfies the same range checks as the
  command-line flags.
================================================================================
"""

import json
import logging
import os
import string
from dataclasses import dataclass, fields, asdict
from typing import Optional

import numpy as np

from . import config as DEFAULTS
from .errors import InvalidParameterError
from .generator import default_thread_count

SEED_ALPHABET = string.ascii_letters + string.digits

# Keys that are never written by --dump-config.
_NOT_DUMPED = ('config_file', 'dump_config')

# Keys that are never read from a config file.
_NOT_LOADED = ('config_file',)

# Older config files name base_level "base_height".
_KEY_ALIASES = {"base_height": "base_level"}


def check_field(name: str, value):
    """
    Type- and range-checks a single configuration value and returns it in
    its canonical type. Raises InvalidParameterError on bad input.
    """
    if value is None:
        return None

    if name in ('width', 'height', 'thread_count'):
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidParameterError(f"{value!r} is not a whole number.")
        if value < 1:
            raise InvalidParameterError(f"{name} must be at least 1.")
        if name == 'thread_count' and value > DEFAULTS.MAX_THREAD_COUNT:
            raise InvalidParameterError(f"thread_count must be between 1 and {DEFAULTS.MAX_THREAD_COUNT}!")
        return value

    if name in ('noise_strength', 'base_level'):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InvalidParameterError(f"{value!r} is not a number.")
        value = float(value)
        if name == 'noise_strength' and not value >= 0.0:
            raise InvalidParameterError("Noise strength must not be negative!")
        if name == 'base_level' and not 0.0 <= value <= 1.0:
            raise InvalidParameterError("Base level must be between 0 and 1!")
        return value

    if name in ('dump_config', 'verbose'):
        if not isinstance(value, bool):
            raise InvalidParameterError(f"{name} must be true or false.")
        return value

    if name == 'seed':
        # Numeric seeds in JSON files are treated as their decimal text.
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if not isinstance(value, str):
            raise InvalidParameterError("seed must be a string.")
        return value

    if name in ('output_path', 'config_file'):
        if not isinstance(value, str) or not value:
            raise InvalidParameterError(f"{name} must be a non-empty path.")
        return value

    raise InvalidParameterError(f"Unknown configuration key '{name}'.")


def random_seed(length: int = DEFAULTS.RANDOM_SEED_LENGTH) -> str:
    """A random alphanumeric seed string, used when the user gives none."""
    rng = np.random.default_rng()
    return ''.join(rng.choice(list(SEED_ALPHABET), size=length))


def _apply_key_aliases(data: dict) -> dict:
    data = dict(data)
    for alias, name in _KEY_ALIASES.items():
        if alias in data:
            if name in data:
                raise InvalidParameterError(f"Configuration sets both '{alias}' and '{name}'.")
            data[name] = data.pop(alias)
    return data


@dataclass
class RunConfig:
    config_file: Optional[str] = None
    dump_config: Optional[bool] = None
    seed: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    noise_strength: Optional[float] = None
    base_level: Optional[float] = None
    thread_count: Optional[int] = None
    output_path: Optional[str] = None
    verbose: Optional[bool] = None

    def __post_init__(self):
        for field in fields(self):
            setattr(self, field.name, check_field(field.name, getattr(self, field.name)))

    @classmethod
    def from_dict(cls, data: dict) -> "RunConfig":
        if not isinstance(data, dict):
            raise InvalidParameterError("Configuration must be a JSON object.")
        data = _apply_key_aliases(data)
        known = {field.name for field in fields(cls)} - set(_NOT_LOADED)
        unknown = sorted(set(data) - known)
        if unknown:
            raise InvalidParameterError(f"Unknown configuration keys: {', '.join(unknown)}")
        return cls(**data)

    def merge(self, other: "RunConfig") -> "RunConfig":
        """Field-wise merge; values set on self win over values on other."""
        merged = {}
        for field in fields(self):
            own = getattr(self, field.name)
            merged[field.name] = own if own is not None else getattr(other, field.name)
        return RunConfig(**merged)

    def merge_with_defaults(self, other: "RunConfig") -> "RunConfig":
        """Like merge(), then fills every remaining gap from the defaults."""
        merged = self.merge(other)
        defaults = {
            'dump_config': DEFAULTS.DEFAULT_DUMP_CONFIG,
            'width': DEFAULTS.DEFAULT_WIDTH,
            'height': DEFAULTS.DEFAULT_HEIGHT,
            'noise_strength': DEFAULTS.DEFAULT_NOISE_STRENGTH,
            'base_level': DEFAULTS.DEFAULT_BASE_LEVEL,
            'output_path': DEFAULTS.DEFAULT_OUTPUT_PATH,
            'verbose': DEFAULTS.DEFAULT_VERBOSE,
        }
        for name, value in defaults.items():
            if getattr(merged, name) is None:
                setattr(merged, name, value)
        if merged.seed is None:
            merged.seed = random_seed()
        if merged.thread_count is None:
            merged.thread_count = min(default_thread_count(), DEFAULTS.MAX_THREAD_COUNT)
        return merged

    def to_dict(self) -> dict:
        data = asdict(self)
        for name in _NOT_DUMPED:
            data.pop(name)
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


def load_config_file(path: str) -> RunConfig:
    """Reads a RunConfig from a JSON file."""
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidParameterError(f"Failed to parse config file '{path}': {e}") from e
    return RunConfig.from_dict(data)


def resolve_config(cli_config: RunConfig, logger: logging.Logger = None) -> RunConfig:
    """
    Combines command-line values with the config file they point at (if any)
    and the defaults. A config file that does not exist is reported and
    ignored.
    """
    logger = logger or logging.getLogger(__name__)

    if cli_config.config_file is not None:
        if os.path.exists(cli_config.config_file):
            logger.info(f"Loading configuration from: {cli_config.config_file}")
            file_config = load_config_file(cli_config.config_file)
            return cli_config.merge_with_defaults(file_config)
        logger.warning(f"Provided config file does not exist: '{cli_config.config_file}'")

    return cli_config.merge_with_defaults(cli_config)
