# map_generation/gradient.py

"""
================================================================================
TERRAIN GRADIENT
================================================================================
This module maps normalized heights onto terrain colours. The height range
[0, 1] is split into ordered terrain bands; each band owns one colour, and
colours are blended between neighbouring bands so that band edges do not show
as hard lines.

Data Contract:
---------------
- Inputs:
    - Band limits: an ordered sequence of (min, max) intervals, one per
      TerrainKind, contiguous and covering [0, 1].
    - Band colours: one (r, g, b) triple per TerrainKind.
    - Heights: Python floats or NumPy float arrays in [0, 1].
- Outputs:
    - TerrainKind values, (r, g, b) tuples, or (N, 3) uint8 NumPy arrays.
- Side Effects: Logs classification failures before raising.
- Invariants:
    - Bands are ordered by height with no gaps or overlaps.
    - lerp_color(center of band) == colour of that band.
    - The scalar and vectorized paths produce identical bytes.
================================================================================
"""

import copy
import enum
import logging
from dataclasses import dataclass

import numpy as np

from . import config as DEFAULTS
from .errors import ClassificationError, InvalidParameterError


class TerrainKind(enum.IntEnum):
    """Terrain bands, ordered from the lowest to the highest."""
    DEEP_WATER = 0
    WATER = 1
    SHALLOW_WATER = 2
    SHORE = 3
    FLAT_LAND = 4
    HIGH_LAND = 5
    MOUNTAINS = 6
    MOUNTAIN_TOP = 7

    @property
    def key(self) -> str:
        """Name used for this band in the configuration tables."""
        return self.name.lower()

    def before(self) -> "TerrainKind":
        """The next lower band; the lowest band is its own predecessor."""
        kinds = _KIND_ORDER
        position = kinds.index(self)
        return kinds[max(position - 1, 0)]

    def after(self) -> "TerrainKind":
        """The next higher band; the highest band is its own successor."""
        kinds = _KIND_ORDER
        position = kinds.index(self)
        return kinds[min(position + 1, len(kinds) - 1)]


_KIND_ORDER = tuple(TerrainKind)


@dataclass(frozen=True)
class TerrainBand:
    kind: TerrainKind
    min: float
    max: float
    color: tuple

    @property
    def center(self) -> float:
        return (self.min + self.max) / 2.0

    def contains(self, height: float, include_max: bool = False) -> bool:
        """Half-open membership test: min <= height < max.

        The highest band passes include_max=True so that 1.0 is covered.
        """
        if include_max:
            return self.min <= height <= self.max
        return self.min <= height < self.max


def _default_limits():
    return [DEFAULTS.TERRAIN_LIMITS[kind.key] for kind in _KIND_ORDER]


def _default_colors():
    return [DEFAULTS.TERRAIN_COLORS[kind.key] for kind in _KIND_ORDER]


def _as_ordered(table, name: str) -> list:
    """Accepts either a sequence in band order or a dict keyed by band name."""
    if isinstance(table, dict):
        missing = [kind.key for kind in _KIND_ORDER if kind.key not in table]
        if missing:
            raise InvalidParameterError(f"{name} is missing bands: {', '.join(missing)}")
        return [table[kind.key] for kind in _KIND_ORDER]
    return list(table)


class GradientTable:
    """
    Ordered terrain band table with colour classification and interpolation.
    Instances are immutable after construction and safe to share between
    threads.
    """
    def __init__(self, limits=None, colors=None, logger: logging.Logger = None):
        """
        Builds and validates the band table.

        Args:
            limits (sequence | dict, optional): (min, max) per band, in band
                order or keyed by band name. Defaults to config.TERRAIN_LIMITS.
            colors (sequence | dict, optional): (r, g, b) per band. Defaults
                to config.TERRAIN_COLORS.
            logger (logging.Logger, optional): Logger for classification
                failures.
        """
        self.logger = logger or logging.getLogger(__name__)

        limits = _as_ordered(_default_limits() if limits is None else limits, "Terrain limits")
        colors = _as_ordered(_default_colors() if colors is None else colors, "Terrain colors")
        self._validate(limits, colors)

        self.bands = tuple(
            TerrainBand(kind, float(lo), float(hi), tuple(int(c) for c in color))
            for kind, (lo, hi), color in zip(_KIND_ORDER, limits, colors)
        )

        # --- Lookup arrays for the vectorized path ---
        self._mins = np.array([band.min for band in self.bands], dtype=np.float64)
        self._maxs = np.array([band.max for band in self.bands], dtype=np.float64)
        self._centers = np.array([band.center for band in self.bands], dtype=np.float64)
        self._colors = np.array([band.color for band in self.bands], dtype=np.float64)
        for array in (self._mins, self._maxs, self._centers, self._colors):
            array.flags.writeable = False

    @staticmethod
    def _validate(limits: list, colors: list):
        band_count = len(_KIND_ORDER)
        if len(limits) != band_count or len(colors) != band_count:
            raise InvalidParameterError(
                f"Expected {band_count} terrain limits and colors, "
                f"got {len(limits)} limits and {len(colors)} colors."
            )

        for kind, interval in zip(_KIND_ORDER, limits):
            if len(interval) != 2:
                raise InvalidParameterError(f"Band '{kind.key}' limit must be a (min, max) pair.")
            lo, hi = interval
            if not lo < hi:
                raise InvalidParameterError(f"Band '{kind.key}' has an empty interval ({lo}, {hi}).")

        if limits[0][0] != 0.0 or limits[-1][1] != 1.0:
            raise InvalidParameterError("Terrain bands must start at 0.0 and end at 1.0.")

        for index, kind in enumerate(_KIND_ORDER[:-1]):
            hi, next_lo = limits[index][1], limits[index + 1][0]
            if hi != next_lo:
                raise InvalidParameterError(
                    f"Band '{kind.key}' ends at {hi} but the next band starts at {next_lo}."
                )

        for kind, color in zip(_KIND_ORDER, colors):
            if len(color) != 3 or not all(isinstance(c, (int, np.integer)) and 0 <= c <= 255 for c in color):
                raise InvalidParameterError(f"Band '{kind.key}' color must be three integers in 0..255.")

    def copy(self) -> "GradientTable":
        """Returns a cheap copy that shares the read-only lookup tables."""
        return copy.copy(self)

    def band(self, kind: TerrainKind) -> TerrainBand:
        return self.bands[_KIND_ORDER.index(kind)]

    def before(self, kind: TerrainKind) -> TerrainKind:
        return kind.before()

    def after(self, kind: TerrainKind) -> TerrainKind:
        return kind.after()

    def classify(self, height: float) -> TerrainKind:
        """Returns the band containing height or raises ClassificationError."""
        return self.bands[self._band_index(height)].kind

    def _band_index(self, height: float) -> int:
        last = len(self.bands) - 1
        for index, band in enumerate(self.bands):
            if band.contains(height, include_max=(index == last)):
                return index
        self.logger.error(f"Height {height!r} could not be classified into a terrain band.")
        raise ClassificationError(height)

    def get_color(self, height: float) -> tuple:
        """The pure colour of the band containing height, without blending."""
        return self.bands[self._band_index(height)].color

    def lerp_color(self, height: float) -> tuple:
        """
        Blends the colour of the band containing height with the colour of
        the neighbouring band on the side height lies on, weighted by the
        distance to each band's center.
        """
        index = self._band_index(height)
        band = self.bands[index]
        dist_self = height - band.center

        if dist_self < 0.0:
            neighbour = self.bands[max(index - 1, 0)]
        else:
            neighbour = self.bands[min(index + 1, len(self.bands) - 1)]

        dist_self_abs = abs(dist_self)
        denominator = abs(height - neighbour.center) + dist_self_abs
        factor = dist_self_abs / denominator if denominator > 0.0 else 0.0
        factor_inverse = 1.0 - factor

        return tuple(
            int(other * factor + own * factor_inverse)
            for other, own in zip(neighbour.color, band.color)
        )

    def classify_array(self, heights: np.ndarray) -> np.ndarray:
        """Vectorized band lookup. Returns band positions as an int array."""
        heights = np.asarray(heights, dtype=np.float64)
        last = len(self.bands) - 1

        indices = np.searchsorted(self._mins, heights, side='right') - 1
        safe = np.clip(indices, 0, last)
        valid = (indices >= 0) & (
            (heights < self._maxs[safe]) | ((safe == last) & (heights == self._maxs[last]))
        )
        if not np.all(valid):
            bad = heights[~valid].flat[0]
            self.logger.error(
                f"{np.count_nonzero(~valid)} heights could not be classified "
                f"into a terrain band (first: {bad!r})."
            )
            raise ClassificationError(float(bad))
        return safe

    def lerp_colors(self, heights: np.ndarray) -> np.ndarray:
        """
        Vectorized lerp_color. Returns an (N, 3) uint8 array for a 1-D array
        of N heights. Byte-for-byte identical to calling lerp_color per value.
        """
        heights = np.asarray(heights, dtype=np.float64).ravel()
        last = len(self.bands) - 1
        indices = self.classify_array(heights)

        dist_self = heights - self._centers[indices]
        neighbours = np.where(
            dist_self < 0.0,
            np.maximum(indices - 1, 0),
            np.minimum(indices + 1, last),
        )

        dist_self_abs = np.abs(dist_self)
        denominator = np.abs(heights - self._centers[neighbours]) + dist_self_abs
        factor = np.zeros_like(heights)
        np.divide(dist_self_abs, denominator, out=factor, where=denominator > 0.0)
        factor_inverse = 1.0 - factor

        blended = (
            self._colors[neighbours] * factor[:, np.newaxis]
            + self._colors[indices] * factor_inverse[:, np.newaxis]
        )
        return blended.astype(np.uint8)
