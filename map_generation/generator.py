# map_generation/generator.py

"""
================================================================================
PARALLEL MAP GENERATOR
================================================================================
This module fills an RGB pixel buffer with a coloured terrain map. The buffer
is split into contiguous row-major chunks, one per worker thread; each worker
computes fractal noise for its pixels, turns it into a height and writes the
interpolated terrain colour straight into its own slice of the buffer.

Data Contract:
---------------
- Inputs:
    - GenerationParams: seed, width, height, base_level, noise_strength,
      thread_count.
    - out: A caller-owned, writable byte buffer of width * height * 3 bytes
      (bytearray, memoryview or C-contiguous uint8 NumPy array).
    - progress (optional): A ProgressCounter updated while workers run.
- Outputs:
    - None. Every byte of `out` is written before generate() returns.
- Side Effects: Writes `out`; logs using the provided logger.
- Invariants:
    - Worker slices never overlap and together cover the whole buffer.
    - With noise_strength == 0 the output depends only on the seed, the size
      and the base level, not on the thread count.
================================================================================
"""

import logging
import math
import multiprocessing
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

import numpy as np

from . import config as DEFAULTS
from .errors import InvalidParameterError, WorkerError
from .gradient import GradientTable
from .noise import NoiseField, validate_octaves

# Run seeds are unsigned 64-bit integers.
MAX_SEED = 2 ** 64 - 1

BYTES_PER_PIXEL = 3


def default_thread_count() -> int:
    """One worker per logical CPU, leaving one for the rest of the system."""
    return max(1, multiprocessing.cpu_count() - 1)


@dataclass(frozen=True)
class GenerationParams:
    seed: int
    width: int
    height: int
    base_level: float
    noise_strength: float
    thread_count: int

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def buffer_size(self) -> int:
        return self.pixel_count * BYTES_PER_PIXEL

    def validate(self):
        """Raises InvalidParameterError for any violated precondition."""
        for name in ('seed', 'width', 'height', 'thread_count'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise InvalidParameterError(f"{name} must be an integer, got {value!r}.")
        for name in ('base_level', 'noise_strength'):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float, np.integer, np.floating)):
                raise InvalidParameterError(f"{name} must be a number, got {value!r}.")

        if not 0 <= self.seed <= MAX_SEED:
            raise InvalidParameterError(f"seed must fit in an unsigned 64-bit integer, got {self.seed}.")
        if self.width <= 0 or self.height <= 0:
            raise InvalidParameterError(f"Image size must be positive, got {self.width}x{self.height}.")
        if not (math.isfinite(self.base_level) and 0.0 <= self.base_level <= 1.0):
            raise InvalidParameterError(f"base_level must be between 0 and 1, got {self.base_level}.")
        if not (math.isfinite(self.noise_strength) and self.noise_strength >= 0.0):
            raise InvalidParameterError(f"noise_strength must not be negative, got {self.noise_strength}.")
        if self.thread_count < 1:
            raise InvalidParameterError(f"thread_count must be at least 1, got {self.thread_count}.")


def partition(pixel_count: int, thread_count: int) -> list:
    """
    Splits [0, pixel_count) into contiguous, non-overlapping (start, stop)
    ranges, one per worker. The thread count is clamped to the pixel count so
    that no range is empty; the last range absorbs the remainder.
    """
    if pixel_count <= 0:
        raise InvalidParameterError(f"Cannot partition {pixel_count} pixels.")
    if thread_count < 1:
        raise InvalidParameterError(f"thread_count must be at least 1, got {thread_count}.")

    workers = min(thread_count, pixel_count)
    chunk_size = pixel_count // workers
    ranges = [(i * chunk_size, (i + 1) * chunk_size) for i in range(workers)]

    last_start, _ = ranges[-1]
    ranges[-1] = (last_start, pixel_count)
    return ranges


def allocate_buffer(width: int, height: int) -> bytearray:
    """A zeroed RGB buffer of the right size for a width x height map."""
    return bytearray(width * height * BYTES_PER_PIXEL)


def _as_byte_view(out, expected_size: int) -> np.ndarray:
    """Wraps the caller's buffer in a flat, writable uint8 view without copying."""
    if isinstance(out, np.ndarray):
        if out.dtype != np.uint8 or not out.flags.c_contiguous:
            raise InvalidParameterError("NumPy output buffers must be C-contiguous uint8 arrays.")
        view = out.reshape(-1)
    else:
        try:
            view = np.frombuffer(out, dtype=np.uint8)
        except (TypeError, ValueError) as e:
            raise InvalidParameterError(f"Output buffer is not a byte buffer: {e}") from e

    if not view.flags.writeable:
        raise InvalidParameterError("Output buffer is read-only.")
    if view.size != expected_size:
        raise InvalidParameterError(
            f"Output buffer holds {view.size} bytes, expected {expected_size}."
        )
    return view


class ProgressCounter:
    """
    Count of pixels written so far, shared between the workers and a reporter.
    Workers add under a lock; readers never take it and may see a slightly
    stale value.
    """
    def __init__(self, total: int = 0):
        self._lock = threading.Lock()
        self._count = 0
        self.total = total

    def start(self, total: int):
        with self._lock:
            self._count = 0
            self.total = total

    def add(self, amount: int):
        with self._lock:
            self._count += amount

    @property
    def value(self) -> int:
        return self._count

    @property
    def fraction(self) -> float:
        if self.total <= 0:
            return 0.0
        return min(self._count / self.total, 1.0)

    @property
    def done(self) -> bool:
        return self.total > 0 and self._count >= self.total


class PixelJob:
    """
    Colours the pixels [start, stop) into `view`, which is the job's own
    slice of the output buffer (3 bytes per pixel).
    """
    def __init__(
        self,
        noise_field: NoiseField,
        gradient: GradientTable,
        params: GenerationParams,
        start: int,
        stop: int,
        view: np.ndarray,
        progress: ProgressCounter = None,
        batch_pixels: int = DEFAULTS.PROGRESS_BATCH_PIXELS,
        logger: logging.Logger = None,
    ):
        if view.size != (stop - start) * BYTES_PER_PIXEL:
            raise InvalidParameterError(
                f"Job slice holds {view.size} bytes, expected {(stop - start) * BYTES_PER_PIXEL}."
            )
        self.noise_field = noise_field
        self.gradient = gradient
        self.params = params
        self.start = start
        self.stop = stop
        self.view = view
        self.progress = progress
        self.batch_pixels = max(1, batch_pixels)
        self.logger = logger or logging.getLogger(__name__)

    def compute_heights(self, start: int, count: int, rng: np.random.Generator) -> np.ndarray:
        """Normalized, clamped heights for the pixels [start, start + count)."""
        value = self.noise_field.fractal_chunk(start, count)
        value += DEFAULTS.NOISE_VALUE_OFFSET

        # map value to be inside valid range
        base_level = self.params.base_level
        value = base_level + value * (1.0 - base_level)

        # and apply noise
        if self.params.noise_strength > 0.0:
            jitter = rng.random(count) * DEFAULTS.JITTER_RANGE
            value += jitter * self.params.noise_strength

        return np.clip(value, DEFAULTS.HEIGHT_EPSILON, 1.0 - DEFAULTS.HEIGHT_EPSILON)

    def run(self) -> int:
        # Jitter is deliberately unseeded; only the noise field is reproducible.
        rng = np.random.default_rng()
        pixels = self.view.reshape(-1, BYTES_PER_PIXEL)

        for batch_start in range(self.start, self.stop, self.batch_pixels):
            count = min(self.batch_pixels, self.stop - batch_start)
            heights = self.compute_heights(batch_start, count, rng)

            offset = batch_start - self.start
            pixels[offset:offset + count] = self.gradient.lerp_colors(heights)

            if self.progress is not None:
                self.progress.add(count)

        self.logger.debug(f"Wrote pixels [{self.start}, {self.stop}).")
        return self.stop - self.start


class PartitionedGenerator:
    """
    Fans a map out over a fixed set of worker threads and joins them.
    The gradient and the octave set are fixed per generator; everything else
    comes in with each generate() call.
    """
    def __init__(self, gradient: GradientTable = None, scales=None, weights=None, logger: logging.Logger = None):
        """
        Args:
            gradient (GradientTable, optional): Colour table. Defaults to the
                built-in terrain bands.
            scales, weights (sequence, optional): The octave set. Default to
                config.OCTAVE_SCALES / config.OCTAVE_WEIGHTS.
            logger (logging.Logger, optional): The logger instance for all output.
        """
        self.logger = logger or logging.getLogger(__name__)
        self.gradient = gradient if gradient is not None else GradientTable(logger=self.logger)
        self.scales = tuple(DEFAULTS.OCTAVE_SCALES if scales is None else scales)
        self.weights = tuple(DEFAULTS.OCTAVE_WEIGHTS if weights is None else weights)
        validate_octaves(self.scales, self.weights)

    def create_jobs(self, params: GenerationParams, view: np.ndarray, progress: ProgressCounter = None) -> list:
        """One PixelJob per partition range, each with its own slice of `view`."""
        noise_field = NoiseField(params.seed, params.width, params.height, self.scales, self.weights)
        return [
            PixelJob(
                noise_field.copy(),
                self.gradient.copy(),
                params,
                start,
                stop,
                view[start * BYTES_PER_PIXEL:stop * BYTES_PER_PIXEL],
                progress,
                logger=self.logger,
            )
            for start, stop in partition(params.pixel_count, params.thread_count)
        ]

    def generate(self, params: GenerationParams, out, progress: ProgressCounter = None):
        """
        Fills `out` with the coloured map described by `params`.

        Raises:
            InvalidParameterError: Before any thread starts, if a parameter
                or the buffer is invalid.
            WorkerError: If any worker failed. All workers are joined first.
        """
        params.validate()
        view = _as_byte_view(out, params.buffer_size)

        if progress is not None:
            progress.start(params.pixel_count)

        jobs = self.create_jobs(params, view, progress)
        if len(jobs) < params.thread_count:
            self.logger.debug(
                f"Clamped thread count from {params.thread_count} to {len(jobs)} "
                f"for {params.pixel_count} pixels."
            )

        self.logger.info(
            f"Generating {params.width}x{params.height} map with seed {params.seed} "
            f"on {len(jobs)} threads."
        )

        failures = []
        with ThreadPoolExecutor(max_workers=len(jobs), thread_name_prefix=DEFAULTS.WORKER_THREAD_NAME_PREFIX) as executor:
            futures = [(job, executor.submit(job.run)) for job in jobs]
            for job, future in futures:
                try:
                    future.result()
                except Exception as e:
                    self.logger.error(
                        f"Worker for pixels [{job.start}, {job.stop}) failed: {e}", exc_info=True
                    )
                    failures.append((job, e))

        if failures:
            job, error = failures[0]
            raise WorkerError(job.start, job.stop, str(error)) from error


def generate(
    seed: int,
    width: int,
    height: int,
    base_level: float,
    noise_strength: float,
    thread_count: int,
    out,
    progress: ProgressCounter = None,
    gradient: GradientTable = None,
    logger: logging.Logger = None,
):
    """
    Fills `out` (width * height * 3 bytes, row-major RGB) with a terrain map.
    A thread_count of None uses default_thread_count().
    """
    if thread_count is None:
        thread_count = default_thread_count()
    params = GenerationParams(
        seed=seed,
        width=width,
        height=height,
        base_level=base_level,
        noise_strength=noise_strength,
        thread_count=thread_count,
    )
    PartitionedGenerator(gradient=gradient, logger=logger).generate(params, out, progress=progress)
