import logging
import math
import threading

import numpy as np
import pytest

from map_generation import config as DEFAULTS
from map_generation.errors import InvalidParameterError, WorkerError
from map_generation.generator import (
    GenerationParams,
    PartitionedGenerator,
    PixelJob,
    ProgressCounter,
    allocate_buffer,
    default_thread_count,
    generate,
    partition,
)
from map_generation.gradient import GradientTable
from map_generation.noise import NoiseField


def make_params(**overrides):
    values = dict(seed=42, width=16, height=12, base_level=0.0, noise_strength=0.0, thread_count=3)
    values.update(overrides)
    return GenerationParams(**values)


def run(params, out=None):
    out = allocate_buffer(params.width, params.height) if out is None else out
    PartitionedGenerator().generate(params, out)
    return bytes(out)


# --- Partitioning ---

def test_partition_last_range_absorbs_remainder():
    assert partition(10, 3) == [(0, 3), (3, 6), (6, 10)]
    assert partition(12, 4) == [(0, 3), (3, 6), (6, 9), (9, 12)]
    assert partition(7, 1) == [(0, 7)]


def test_partition_clamps_thread_count_to_pixel_count():
    assert partition(5, 8) == [(0, 1), (1, 2), (2, 3), (3, 4), (4, 5)]
    assert partition(1, 256) == [(0, 1)]


@pytest.mark.parametrize("pixel_count", [1, 2, 17, 100, 1000, 1921])
@pytest.mark.parametrize("thread_count", [1, 2, 3, 7, 8, 64])
def test_partition_ranges_are_disjoint_and_complete(pixel_count, thread_count):
    ranges = partition(pixel_count, thread_count)
    assert len(ranges) == min(pixel_count, thread_count)
    assert ranges[0][0] == 0
    assert ranges[-1][1] == pixel_count
    for (_, stop), (next_start, _) in zip(ranges, ranges[1:]):
        assert stop == next_start
    assert all(start < stop for start, stop in ranges)


def test_partition_rejects_degenerate_input():
    with pytest.raises(InvalidParameterError):
        partition(0, 4)
    with pytest.raises(InvalidParameterError):
        partition(10, 0)


# --- Generation ---

def test_generation_is_deterministic():
    params = make_params()
    assert run(params) == run(params)


def test_output_does_not_depend_on_thread_count():
    single = run(make_params(width=13, height=7, thread_count=1))
    for thread_count in (2, 3, 8):
        assert run(make_params(width=13, height=7, thread_count=thread_count)) == single


def test_different_seeds_give_different_maps():
    assert run(make_params(seed=1, width=32, height=32)) != run(make_params(seed=2, width=32, height=32))


def test_every_byte_is_written_with_uneven_chunks():
    params = make_params(width=11, height=7, thread_count=4)
    zeros = bytearray(params.buffer_size)
    ones = bytearray(b"\xff" * params.buffer_size)
    assert run(params, zeros) == run(params, ones)


# Reference pipeline for the 4x4 scenario. Every constant is written out here
# so that a change to the noise primitive, the permutation table, the octave
# set or the band table breaks the scenario.
REFERENCE_OCTAVES = [
    (1.0, 0.35), (2.0, 0.2), (4.0, 0.15), (8.0, 0.075),
    (16.0, 0.075), (32.0, 0.025), (64.0, 0.025),
]
REFERENCE_BANDS = [
    (0.0, 0.4, (0, 64, 106)),
    (0.4, 0.6, (0, 117, 119)),
    (0.6, 0.63, (180, 240, 251)),
    (0.63, 0.64, (194, 178, 128)),
    (0.64, 0.8, (72, 111, 56)),
    (0.8, 0.9, (111, 130, 70)),
    (0.9, 0.98, (79, 79, 79)),
    (0.98, 1.0, (253, 254, 255)),
]
REFERENCE_GRADIENTS = [(0, 1), (0, -1), (1, 0), (-1, 0)]


def reference_permutation(seed):
    p = np.arange(256)
    np.random.default_rng(seed & 0xFFFFFFFF).shuffle(p)
    return p.tolist() * 2


def reference_perlin(p, x, y):
    def fade(t):
        return t * t * t * (t * (t * 6 - 15) + 10)

    def lerp(a, b, t):
        return a + t * (b - a)

    def dot(h, dx, dy):
        gx, gy = REFERENCE_GRADIENTS[h % 4]
        return gx * dx + gy * dy

    xi, yi = math.floor(x), math.floor(y)
    xf, yf = x - xi, y - yi
    px0, py0 = xi % 256, yi % 256
    px1, py1 = (px0 + 1) % 256, (py0 + 1) % 256

    bottom = lerp(dot(p[p[px0] + py0], xf, yf), dot(p[p[px1] + py0], xf - 1, yf), fade(xf))
    top = lerp(dot(p[p[px0] + py1], xf, yf - 1), dot(p[p[px1] + py1], xf - 1, yf - 1), fade(xf))
    return lerp(bottom, top, fade(yf))


def reference_color(height):
    centers = [(lo + hi) / 2.0 for lo, hi, _ in REFERENCE_BANDS]
    index = next(i for i, (lo, hi, _) in enumerate(REFERENCE_BANDS) if lo <= height < hi or hi == height == 1.0)
    dist_self = height - centers[index]
    other = max(index - 1, 0) if dist_self < 0.0 else min(index + 1, len(REFERENCE_BANDS) - 1)
    denominator = abs(height - centers[other]) + abs(dist_self)
    factor = abs(dist_self) / denominator if denominator > 0.0 else 0.0
    return [
        int(theirs * factor + own * (1.0 - factor))
        for theirs, own in zip(REFERENCE_BANDS[other][2], REFERENCE_BANDS[index][2])
    ]


def reference_map(seed, width, height):
    p = reference_permutation(seed)
    output = []
    for y in range(height):
        for x in range(width):
            value = 0.0
            for scale, weight in REFERENCE_OCTAVES:
                step = min(scale / width, scale / height)
                value += reference_perlin(p, step * x, step * y) * weight
            value = min(max(value + 0.5, 1e-7), 1.0 - 1e-7)
            output.extend(reference_color(value))
    return bytes(output)


def test_four_by_four_scenario():
    params = make_params(seed=42, width=4, height=4, base_level=0.0, noise_strength=0.0, thread_count=1)
    first = run(params)
    assert len(first) == 48
    assert first == reference_map(42, 4, 4)
    assert run(params) == first
    assert run(make_params(seed=42, width=4, height=4, thread_count=4)) == first

    # The scalar path gives exactly the same bytes.
    field = NoiseField(42, 4, 4)
    gradient = GradientTable()
    pixels = np.frombuffer(first, dtype=np.uint8).reshape(16, 3)
    for index in range(16):
        value = field.fractal_sample(index % 4, index // 4) + DEFAULTS.NOISE_VALUE_OFFSET
        value = min(max(value, DEFAULTS.HEIGHT_EPSILON), 1.0 - DEFAULTS.HEIGHT_EPSILON)
        assert tuple(pixels[index]) == gradient.lerp_color(value)


def test_reference_map_matches_non_square_image():
    assert run(make_params(seed=7, width=9, height=5, thread_count=2)) == reference_map(7, 9, 5)


def test_full_base_level_raises_everything_to_mountain_tops():
    top = DEFAULTS.TERRAIN_COLORS["mountain_top"]
    for noise_strength in (0.0, 1.0):
        output = run(make_params(base_level=1.0, noise_strength=noise_strength))
        pixels = np.frombuffer(output, dtype=np.uint8).reshape(-1, 3)
        assert (pixels == top).all()


def test_jitter_keeps_colors_valid():
    params = make_params(width=24, height=24, noise_strength=5.0, thread_count=4)
    pixels = np.frombuffer(run(params), dtype=np.uint8).reshape(-1, 3)
    band_colors = np.array([band.color for band in GradientTable().bands])
    # Blends never leave the per-channel range of the band colours.
    assert (pixels >= band_colors.min(axis=0)).all()
    assert (pixels <= band_colors.max(axis=0)).all()


def test_jitter_is_added_to_every_height():
    strength = 5.0
    calm = make_params(noise_strength=0.0)
    noisy = make_params(noise_strength=strength)
    field = NoiseField(calm.seed, calm.width, calm.height)
    count = calm.pixel_count

    def heights(params):
        job = PixelJob(field, GradientTable(), params, 0, count, np.zeros(params.buffer_size, dtype=np.uint8))
        return job.compute_heights(0, count, np.random.default_rng(3))

    delta = heights(noisy) - heights(calm)
    assert (delta >= 0.0).all()
    assert (delta < DEFAULTS.JITTER_RANGE * strength).all()
    assert delta.max() > 0.0

    draws = np.random.default_rng(3).random(count) * DEFAULTS.JITTER_RANGE * strength
    unclamped = (heights(calm) > DEFAULTS.HEIGHT_EPSILON) & (heights(noisy) < 1.0 - DEFAULTS.HEIGHT_EPSILON)
    np.testing.assert_allclose(delta[unclamped], draws[unclamped], atol=1e-12)


def test_workers_log_under_their_thread_names(caplog):
    caplog.set_level(logging.DEBUG, logger="map_generation.generator")
    run(make_params(thread_count=3))
    worker_records = [r for r in caplog.records if r.getMessage().startswith("Wrote pixels")]
    assert len(worker_records) == 3
    assert all(r.threadName.startswith(DEFAULTS.WORKER_THREAD_NAME_PREFIX) for r in worker_records)


def test_numpy_and_memoryview_buffers_are_filled_in_place():
    params = make_params()
    expected = run(params)

    array = np.zeros((params.height, params.width, 3), dtype=np.uint8)
    PartitionedGenerator().generate(params, array)
    assert array.tobytes() == expected

    backing = bytearray(params.buffer_size)
    PartitionedGenerator().generate(params, memoryview(backing))
    assert bytes(backing) == expected


def test_module_level_generate_uses_default_thread_count():
    out = allocate_buffer(9, 9)
    generate(42, 9, 9, 0.0, 0.0, None, out)
    assert bytes(out) == run(make_params(width=9, height=9, thread_count=1))


def test_thread_count_larger_than_pixel_count_is_clamped():
    assert run(make_params(width=2, height=2, thread_count=64)) == run(make_params(width=2, height=2, thread_count=1))


@pytest.mark.parametrize("overrides", [
    dict(width=0),
    dict(height=0),
    dict(width=-3),
    dict(width=4.0),
    dict(base_level=1.5),
    dict(base_level=-0.1),
    dict(base_level=float("nan")),
    dict(noise_strength=-1.0),
    dict(noise_strength=float("inf")),
    dict(thread_count=0),
    dict(seed=-1),
    dict(seed=2 ** 64),
])
def test_invalid_parameters_are_rejected_before_writing(overrides):
    params = make_params(**overrides)
    out = bytearray(16 * 12 * 3)
    with pytest.raises(InvalidParameterError):
        PartitionedGenerator().generate(params, out)
    assert out == bytearray(16 * 12 * 3)


@pytest.mark.parametrize("out", [
    bytearray(10),
    bytes(16 * 12 * 3),
    np.zeros(16 * 12 * 3, dtype=np.float64),
    np.zeros((12, 16, 3), dtype=np.uint8)[:, ::2],
    "not a buffer",
])
def test_invalid_buffers_are_rejected(out):
    with pytest.raises(InvalidParameterError):
        PartitionedGenerator().generate(make_params(), out)


class FailingGradient(GradientTable):
    """Colour lookup that always fails inside the worker."""

    def lerp_colors(self, heights):
        raise RuntimeError("colour lookup exploded")


def test_worker_failure_is_surfaced_to_the_caller():
    generator = PartitionedGenerator(gradient=FailingGradient())
    with pytest.raises(WorkerError) as excinfo:
        generator.generate(make_params(thread_count=2), allocate_buffer(16, 12))
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert excinfo.value.start == 0


def test_progress_counter_reaches_total():
    params = make_params(width=40, height=30, thread_count=4)
    progress = ProgressCounter()
    PartitionedGenerator().generate(params, allocate_buffer(40, 30), progress=progress)
    assert progress.total == params.pixel_count
    assert progress.value == params.pixel_count
    assert progress.fraction == 1.0
    assert progress.done


def test_progress_counter_is_thread_safe():
    progress = ProgressCounter(total=8000)

    def work():
        for _ in range(1000):
            progress.add(1)

    threads = [threading.Thread(target=work) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert progress.value == 8000
    assert progress.done


def test_pixel_job_batches_write_the_same_pixels():
    params = make_params(width=10, height=3, thread_count=1)
    field = NoiseField(params.seed, params.width, params.height)
    gradient = GradientTable()
    expected = np.frombuffer(run(params), dtype=np.uint8)

    view = np.zeros(params.buffer_size, dtype=np.uint8)
    progress = ProgressCounter(total=params.pixel_count)
    job = PixelJob(field, gradient, params, 0, params.pixel_count, view, progress, batch_pixels=7)
    assert job.run() == params.pixel_count
    np.testing.assert_array_equal(view, expected)
    assert progress.value == params.pixel_count


def test_pixel_job_rejects_mismatched_slice():
    params = make_params()
    field = NoiseField(params.seed, params.width, params.height)
    with pytest.raises(InvalidParameterError):
        PixelJob(field, GradientTable(), params, 0, 10, np.zeros(29, dtype=np.uint8))


def test_default_thread_count_is_positive():
    assert default_thread_count() >= 1
