# map_generation/errors.py

"""Exception types raised by the map generator."""


class MapGenerationError(Exception):
    """Base class for every error raised by map_generation."""


class InvalidParameterError(MapGenerationError, ValueError):
    """A generation parameter, table or buffer failed validation.

    Raised before any worker thread is started.
    """


class ClassificationError(MapGenerationError):
    """A height fell outside every terrain band.

    This can only happen when the band table has gaps or the height clamp is
    broken, so it is not meant to be recovered from.
    """

    def __init__(self, height):
        super().__init__(f"Height {height!r} is not inside any terrain band.")
        self.height = height


class WorkerError(MapGenerationError):
    """A worker thread failed; the output buffer is only partially written."""

    def __init__(self, start: int, stop: int, message: str):
        super().__init__(f"Worker for pixels [{start}, {stop}) failed: {message}")
        self.start = start
        self.stop = stop
