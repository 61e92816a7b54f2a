# map_generation/__init__.py

# This file makes the 'map_generation' directory a Python package.
# We can also use it to define the public API of the package.

from .errors import (
    MapGenerationError,
    InvalidParameterError,
    ClassificationError,
    WorkerError,
)
from .gradient import GradientTable, TerrainBand, TerrainKind
from .noise import NoiseField
from .generator import (
    GenerationParams,
    PartitionedGenerator,
    PixelJob,
    ProgressCounter,
    allocate_buffer,
    default_thread_count,
    generate,
    partition,
)
from .hashing import SeedHasher, hash_seed

__all__ = [
    "MapGenerationError",
    "InvalidParameterError",
    "ClassificationError",
    "WorkerError",
    "GradientTable",
    "TerrainBand",
    "TerrainKind",
    "NoiseField",
    "GenerationParams",
    "PartitionedGenerator",
    "PixelJob",
    "ProgressCounter",
    "allocate_buffer",
    "default_thread_count",
    "generate",
    "partition",
    "SeedHasher",
    "hash_seed",
]
