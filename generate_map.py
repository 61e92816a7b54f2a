# generate_map.py

"""
================================================================================
MAP GENERATOR COMMAND-LINE TOOL
================================================================================
Generates a coloured terrain map from fractal noise and saves it as an image.
Flags override values from an optional JSON configuration file, which in turn
override the built-in defaults.

Usage:
    python generate_map.py --seed "my world" --width 1920 --height 1080
    python generate_map.py --config-file path/to/config.json --dump-config
================================================================================
"""
import sys
import time
import logging
import argparse
from concurrent.futures import ThreadPoolExecutor

from tqdm import tqdm

from map_generation import config as DEFAULTS
from map_generation.errors import MapGenerationError
from map_generation.generator import GenerationParams, PartitionedGenerator, ProgressCounter, allocate_buffer
from map_generation.hashing import hash_seed
from map_generation.image_io import save_image
from map_generation.settings import RunConfig, check_field, resolve_config

# Worker records carry their thread name ("mapgen_N").
LOG_FORMAT = '%(asctime)s - %(threadName)s - %(levelname)s - %(message)s'


def _flag_type(name: str, convert):
    """Builds an argparse type that converts and range-checks one config field."""
    def parse(text: str):
        try:
            value = convert(text)
        except ValueError:
            raise argparse.ArgumentTypeError(f"{text} is not a number.")
        try:
            return check_field(name, value)
        except MapGenerationError as e:
            raise argparse.ArgumentTypeError(str(e))
    return parse


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Program to generate maps and save them as images.")
    parser.add_argument("-i", "--config-file", type=str, help="Path to configuration JSON file.")
    parser.add_argument("-d", "--dump-config", action="store_true", default=None,
                        help="Print the resolved configuration as JSON before generating.")
    parser.add_argument("-s", "--seed", type=str, help="Seed to start generating with.")
    parser.add_argument("-w", "--width", type=_flag_type('width', int), help="Width of image.")
    parser.add_argument("-H", "--height", type=_flag_type('height', int), help="Height of image.")
    parser.add_argument("-n", "--noise-strength", type=_flag_type('noise_strength', float),
                        help="Strength of white noise applied to the fractal noise.")
    parser.add_argument("-b", "--base-level", "--base-height", dest="base_level",
                        type=_flag_type('base_level', float),
                        help="Base height at which to start while generating (0 to 1).")
    parser.add_argument("-j", "--thread-count", type=_flag_type('thread_count', int),
                        help="Number of threads created to generate the image.")
    parser.add_argument("-o", "--output-path", type=str, help="Output path to save image at.")
    parser.add_argument("-q", "--quiet", dest="verbose", action="store_false", default=None,
                        help="Only log warnings and errors.")
    return parser


def run_with_progress(generator: PartitionedGenerator, params: GenerationParams, image, show_progress: bool):
    """Runs the generator in the background while the main thread draws a progress bar."""
    progress = ProgressCounter()
    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="mapgen-main") as executor:
        future = executor.submit(generator.generate, params, image, progress)
        if show_progress:
            with tqdm(total=params.pixel_count, desc="Generating", unit="px", unit_scale=True) as bar:
                while not future.done():
                    bar.update(progress.value - bar.n)
                    time.sleep(DEFAULTS.PROGRESS_POLL_INTERVAL_S)
                bar.update(progress.value - bar.n)
        future.result()


def generate_map(cli_config: RunConfig) -> int:
    """Resolves the configuration, generates the map and saves it. Returns an exit code."""
    # 1. --- Setup Logging ---
    verbose = cli_config.verbose is not False
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format=LOG_FORMAT,
        stream=sys.stdout
    )
    logger = logging.getLogger("MapGenerator")

    try:
        # 2. --- Load Configuration ---
        config = resolve_config(cli_config, logger)
        logger.setLevel(logging.INFO if config.verbose else logging.WARNING)
        if config.dump_config:
            print(config.to_json())

        # 3. --- Generate ---
        params = GenerationParams(
            seed=hash_seed(config.seed),
            width=config.width,
            height=config.height,
            base_level=config.base_level,
            noise_strength=config.noise_strength,
            thread_count=config.thread_count,
        )
        image = allocate_buffer(params.width, params.height)
        generator = PartitionedGenerator(logger=logger)

        start_time = time.perf_counter()
        run_with_progress(generator, params, image, show_progress=config.verbose)
        duration = time.perf_counter() - start_time

        pixels_per_second = int(params.pixel_count / duration) if duration > 0 else params.pixel_count
        logger.info(f"Done! Took {duration:.3f} s (~ {pixels_per_second:,} px / sec)")

        # 4. --- Save ---
        save_image(image, params.width, params.height, config.output_path, logger)
    except (MapGenerationError, OSError) as e:
        logger.critical(f"Map generation failed: {e}")
        return 1

    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cli_config = RunConfig(**vars(args))
    except MapGenerationError as e:
        logging.getLogger("MapGenerator").critical(f"Invalid arguments: {e}")
        return 1
    return generate_map(cli_config)


# --- Command-Line Interface ---
if __name__ == "__main__":
    sys.exit(main())
