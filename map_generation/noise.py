# map_generation/noise.py

"""
================================================================================
NOISE GENERATION UTILITIES
================================================================================
This module provides seeded 2D Perlin noise and the multi-octave (fractal) sum
used to synthesize terrain heights. The JIT kernels are pure functions of a
pre-shuffled permutation table and release the GIL, so several threads can
evaluate disjoint pixel ranges at the same time.

Data Contract:
---------------
- Inputs:
    - p: A pre-shuffled NumPy permutation table (int array, 512 entries).
    - x, y: Continuous sample coordinates.
    - steps, weights: Per-octave coordinate scale factors and weights.
- Outputs:
    - Noise values (approximately in [-1, 1] per octave).
- Side Effects: None.
- Invariants: Identical inputs and seed always yield identical values,
  regardless of which thread evaluates them.
================================================================================
"""

import copy

import numpy as np
from numba import njit

from . import config as DEFAULTS
from .errors import InvalidParameterError

# Pre-defined gradient vectors for performance.
_GRADIENT_VECTORS = np.array([[0, 1], [0, -1], [1, 0], [-1, 0]])

# The noise primitive is seeded with 32 bits.
NOISE_SEED_MASK = 0xFFFFFFFF

@njit
def _lerp(a, b, x):
    "Linear interpolation."
    return a + x * (b - a)

@njit
def _fade(t):
    "6t^5 - 15t^4 + 10t^3"
    return t * t * t * (t * (t * 6 - 15) + 10)

@njit
def _gradient(h, x, y):
    """Calculates the dot product between a gradient vector and coordinates."""
    g = _GRADIENT_VECTORS[h % 4]
    # Use explicit indexing for Numba compatibility
    return g[0] * x + g[1] * y

@njit(nogil=True)
def perlin_2d(p, x, y):
    """Single-octave 2D Perlin noise at one continuous coordinate."""
    xi = int(np.floor(x))
    yi = int(np.floor(y))

    xf = x - xi
    yf = y - yi

    u = _fade(xf)
    v = _fade(yf)

    px0 = xi % 256
    px1 = (px0 + 1) % 256
    py0 = yi % 256
    py1 = (py0 + 1) % 256

    # Numba requires scalar indexing
    idx00 = p[p[px0] + py0]
    idx01 = p[p[px0] + py1]
    idx10 = p[p[px1] + py0]
    idx11 = p[p[px1] + py1]

    g00 = _gradient(idx00, xf, yf)
    g01 = _gradient(idx01, xf, yf - 1)
    g10 = _gradient(idx10, xf - 1, yf)
    g11 = _gradient(idx11, xf - 1, yf - 1)

    x1 = _lerp(g00, g10, u)
    x2 = _lerp(g01, g11, u)
    return _lerp(x1, x2, v)

@njit(nogil=True)
def fractal_noise_chunk(p, steps, weights, width, start, count):
    """
    Fractal noise for `count` consecutive row-major pixels starting at the
    linear index `start`. Pixel coordinates are decoded from the global index,
    so the result does not depend on how the image is split into chunks.
    """
    values = np.empty(count)
    for i in range(count):
        index = start + i
        x = index % width
        y = index // width

        value = 0.0
        for octave in range(steps.shape[0]):
            step = steps[octave]
            value += perlin_2d(p, step * x, step * y) * weights[octave]
        values[i] = value

    return values


def derive_noise_seed(seed: int) -> int:
    """Collapses a 64-bit run seed into the 32-bit seed of the noise primitive."""
    return int(seed) & NOISE_SEED_MASK


def make_permutation_table(seed: int) -> np.ndarray:
    """Builds the doubled 512-entry permutation table for a run seed."""
    p = np.arange(256, dtype=int)
    rng = np.random.default_rng(derive_noise_seed(seed))
    rng.shuffle(p)
    return np.stack([p, p]).flatten()


def octave_steps(width: int, height: int, scales) -> np.ndarray:
    """
    Per-octave pixel-to-noise step. Normalizing against the smaller image
    side keeps features the same size for non-square images.
    """
    scales = np.asarray(scales, dtype=np.float64)
    return np.minimum(scales / width, scales / height)


def validate_octaves(scales, weights):
    if len(scales) == 0 or len(scales) != len(weights):
        raise InvalidParameterError(
            f"Octave scales and weights must be non-empty and of equal length "
            f"(got {len(scales)} scales, {len(weights)} weights)."
        )
    if any(not np.isfinite(s) or s <= 0 for s in scales):
        raise InvalidParameterError("Octave scales must be positive numbers.")
    if any(a >= b for a, b in zip(scales, scales[1:])):
        raise InvalidParameterError("Octave scales must be strictly increasing.")
    if any(not np.isfinite(w) for w in weights):
        raise InvalidParameterError("Octave weights must be finite numbers.")


class NoiseField:
    """
    A seeded coherent-noise field bound to one image size.
    The permutation table is read-only, so copies can be handed to worker
    threads without synchronization.
    """
    def __init__(self, seed: int, width: int, height: int, scales=None, weights=None, permutation_table: np.ndarray = None):
        scales = tuple(DEFAULTS.OCTAVE_SCALES if scales is None else scales)
        weights = tuple(DEFAULTS.OCTAVE_WEIGHTS if weights is None else weights)
        validate_octaves(scales, weights)
        if width <= 0 or height <= 0:
            raise InvalidParameterError(f"Noise field size must be positive, got {width}x{height}.")

        self.seed = int(seed)
        self.width = int(width)
        self.height = int(height)

        if permutation_table is not None:
            self._p = np.array(permutation_table)
        else:
            self._p = make_permutation_table(self.seed)
        self._steps = octave_steps(self.width, self.height, scales)
        self._weights = np.asarray(weights, dtype=np.float64)
        for array in (self._p, self._steps, self._weights):
            array.flags.writeable = False

    @property
    def permutation_table(self) -> np.ndarray:
        return self._p

    @property
    def steps(self) -> np.ndarray:
        return self._steps

    @property
    def weights(self) -> np.ndarray:
        return self._weights

    def copy(self) -> "NoiseField":
        """Cheap copy sharing the read-only tables."""
        return copy.copy(self)

    def sample(self, x: float, y: float) -> float:
        return float(perlin_2d(self._p, float(x), float(y)))

    def fractal_sample(self, x_px: int, y_px: int) -> float:
        """Weighted sum of one noise sample per octave at a pixel coordinate."""
        value = 0.0
        for step, weight in zip(self._steps, self._weights):
            value += perlin_2d(self._p, step * x_px, step * y_px) * weight
        return float(value)

    def fractal_chunk(self, start: int, count: int) -> np.ndarray:
        """Fractal samples for the row-major pixel indices [start, start + count)."""
        return fractal_noise_chunk(self._p, self._steps, self._weights, self.width, start, count)
