# map_generation/config.py

"""
================================================================================
INTERNAL DEFAULT CONFIGURATION
================================================================================
This module contains the default, fallback internal constants for the map
generator. These values are used if they are not explicitly provided by the
command line or by a JSON configuration file.

DO NOT MODIFY THIS FILE FOR A SPECIFIC MAP.
Instead, pass a configuration file or command-line flags to generate_map.py,
or inject custom tables into the GradientTable / PartitionedGenerator.
================================================================================
"""

# --- Image & Run Defaults ---
DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080
DEFAULT_NOISE_STRENGTH = 0.25
DEFAULT_BASE_LEVEL = 0.0
DEFAULT_OUTPUT_PATH = "output.png"
DEFAULT_DUMP_CONFIG = False
DEFAULT_VERBOSE = True

# Length of the random alphanumeric seed used when none is given.
RANDOM_SEED_LENGTH = 32

# Upper bound accepted for --thread-count.
MAX_THREAD_COUNT = 256

# --- Fractal Noise Octaves ---
# Each octave samples the noise field at `scale` cycles across the shorter
# image side. Low scales shape the continents, high scales add fine detail.
OCTAVE_SCALES = (1.0, 2.0, 4.0, 8.0, 16.0, 32.0, 64.0)
OCTAVE_WEIGHTS = (0.35, 0.2, 0.15, 0.075, 0.075, 0.025, 0.025)

# --- Height Post-Processing ---
# The weighted octave sum is centered on zero; shifting it by 0.5 moves it
# into the normalized [0, 1] height range.
NOISE_VALUE_OFFSET = 0.5

# White-noise jitter is drawn from [0, JITTER_RANGE) and multiplied by the
# noise strength. It only breaks up visible banding.
JITTER_RANGE = 0.01

# Heights are clamped to [HEIGHT_EPSILON, 1 - HEIGHT_EPSILON] before colouring.
HEIGHT_EPSILON = 1e-7

# --- Terrain Bands (Normalized 0.0 to 1.0) ---
# Ordered from lowest to highest. Intervals must be contiguous and cover [0, 1].
TERRAIN_LIMITS = {
    "deep_water": (0.0, 0.4),
    "water": (0.4, 0.6),
    "shallow_water": (0.6, 0.63),
    "shore": (0.63, 0.64),
    "flat_land": (0.64, 0.8),
    "high_land": (0.8, 0.9),
    "mountains": (0.9, 0.98),
    "mountain_top": (0.98, 1.0),
}

TERRAIN_COLORS = {
    "deep_water": (0, 64, 106),
    "water": (0, 117, 119),
    "shallow_water": (180, 240, 251),
    "shore": (194, 178, 128),
    "flat_land": (72, 111, 56),
    "high_land": (111, 130, 70),
    "mountains": (79, 79, 79),
    "mountain_top": (253, 254, 255),
}

# --- Rendering & Performance ---
# Pixels a worker colours between two updates of the shared progress counter.
PROGRESS_BATCH_PIXELS = 16384

# Name prefix of the generator's worker threads (shows up in log records).
WORKER_THREAD_NAME_PREFIX = "mapgen"

# How often, in seconds, the command-line progress bar polls the counter.
PROGRESS_POLL_INTERVAL_S = 0.05
