"""
Buffered feature writer with online normalization statistics.

Feature vectors are fed value by value, stored as a unit and handed to a
background thread that updates per-dimension running statistics and appends
the vector to the data file. Finishing writes mean and standard deviation
lines to the norm file.
"""

import logging
from enum import Enum, auto
from pathlib import Path
from queue import Empty, Queue
from threading import Event, Thread
from typing import List, Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

SEPARATOR = " "
ACCURACY = ".5f"

# Standard deviations that would be written as zero at ACCURACY
MIN_STD = 0.5e-5


class SchemaMismatchError(ValueError):
    """Raised when a vector does not match the locked feature schema."""


class NonFiniteFeatureError(ValueError):
    """Raised when a stored vector contains NaN or infinite values."""


class WriterState(Enum):
    """Lifecycle of a FeatureWriter."""
    UNCONFIGURED = auto()
    ACCEPTING = auto()
    ABORTED = auto()
    FINISHING = auto()
    CLOSED = auto()


class RunningStatistics:
    """
    Per-dimension running mean and population standard deviation
    (Welford's algorithm).
    """

    def __init__(self, dim: int):
        self.count = 0
        self._mean = np.zeros(dim)
        self._m2 = np.zeros(dim)

    def add(self, values: np.ndarray):
        values = np.asarray(values, dtype=float)
        self.count += 1
        delta = values - self._mean
        self._mean += delta / self.count
        self._m2 += delta * (values - self._mean)

    def mean(self) -> np.ndarray:
        return self._mean.copy()

    def variance(self) -> np.ndarray:
        if self.count == 0:
            return np.zeros_like(self._m2)
        return self._m2 / self.count

    def std(self) -> np.ndarray:
        return np.sqrt(self.variance())


def format_vector(values: Sequence[float]) -> str:
    return SEPARATOR.join(format(float(x), ACCURACY) for x in values)


class FeatureWriter:
    """
    Writes one stream of feature vectors (inputs or outputs).

    The names fed before the first store() become the schema: they are written
    to the label file and every later vector must have exactly that length.

    Example:
        >>> writer = FeatureWriter.create(Path("export"), "Input")
        >>> writer.feed(1.0, "A")
        >>> writer.feed_xz(np.array([1.0, 2.0, 3.0]), "B")
        >>> writer.store()
        >>> writer.finish()
    """

    def __init__(
        self,
        data_path: Path,
        norm_path: Path,
        labels_path: Path,
        name: str = "features",
    ):
        """
        Open the output files and start the consumer thread.

        Args:
            data_path: One vector per line
            norm_path: Mean and std lines, written on finish
            labels_path: "[index] name" per dimension, written on first store
            name: Stream name used in logs and the thread name
        """
        self.name = name
        self._data_file = open(data_path, "w", encoding="utf-8", newline="\n")
        self._norm_file = open(norm_path, "w", encoding="utf-8", newline="\n")
        self._labels_file = open(labels_path, "w", encoding="utf-8", newline="\n")

        self.state = WriterState.UNCONFIGURED
        self.statistics: Optional[RunningStatistics] = None
        self.stored = 0

        self._values: List[float] = []
        self._names: List[str] = []
        self._buffer: Optional[np.ndarray] = None
        self._cursor = 0

        self._queue: Queue = Queue()
        self._finishing = Event()
        self._error: Optional[BaseException] = None
        self._thread = Thread(target=self._write_loop, name=f"{name}-writer", daemon=True)
        self._thread.start()

    @classmethod
    def create(cls, directory: Path, name: str) -> "FeatureWriter":
        """Writer for <name>.txt, <name>Norm.txt and <name>Labels.txt in a directory."""
        directory = Path(directory)
        return cls(
            directory / f"{name}.txt",
            directory / f"{name}Norm.txt",
            directory / f"{name}Labels.txt",
            name=name,
        )

    @property
    def schema(self) -> List[str]:
        return list(self._names)

    @property
    def dim(self) -> int:
        return len(self._names)

    # -------------------------------------------------------------------------
    # Feeding
    # -------------------------------------------------------------------------

    def feed(self, value: float, name: str):
        """Append one named scalar to the current vector."""
        if self.state == WriterState.UNCONFIGURED:
            self._values.append(float(value))
            self._names.append(name)
        elif self.state == WriterState.ACCEPTING:
            if self._cursor >= len(self._buffer):
                self._abort(f"feature '{name}' exceeds the schema of {self.dim} values")
            self._buffer[self._cursor] = value
            self._cursor += 1
        else:
            raise RuntimeError(f"{self.name}: writer is {self.state.name.lower()}")

    def feed_values(self, values: Sequence[float], name: str):
        """Feed an array; element i is named name + (i + 1)."""
        for i, value in enumerate(values):
            self.feed(float(value), f"{name}{i + 1}")

    def feed_vector(self, value: np.ndarray, name: str):
        """Feed a 2D or 3D vector as name + X, Y(, Z)."""
        for axis, component in zip("XYZ", value):
            self.feed(component, name + axis)

    def feed_xz(self, value: np.ndarray, name: str):
        """Feed the ground-plane components of a 3D vector."""
        self.feed(value[0], name + "X")
        self.feed(value[2], name + "Z")

    # -------------------------------------------------------------------------
    # Storing
    # -------------------------------------------------------------------------

    def store(self):
        """
        Complete the current vector and queue it for writing.

        Raises:
            SchemaMismatchError: If the vector is shorter than the schema;
                the writer is aborted and rejects every later vector
            NonFiniteFeatureError: If the vector holds NaN or infinity
        """
        if self._error is not None:
            raise RuntimeError(f"{self.name}: writer thread failed") from self._error

        if self.state == WriterState.UNCONFIGURED:
            if not self._values:
                raise SchemaMismatchError(f"{self.name}: cannot store an empty vector")
            item = np.array(self._values, dtype=float)
            try:
                self._check_finite(item)
            except NonFiniteFeatureError:
                self._values.clear()
                self._names.clear()
                raise
            self._lock_schema(item)
        elif self.state == WriterState.ACCEPTING:
            if self._cursor != len(self._buffer):
                self._abort(f"vector has {self._cursor} values, schema has {self.dim}")
            self._cursor = 0
            self._check_finite(self._buffer)
            item = self._buffer.copy()
        else:
            raise RuntimeError(f"{self.name}: writer is {self.state.name.lower()}")

        self._queue.put(item)
        self.stored += 1

    def _abort(self, reason: str):
        """Stop accepting vectors; finish() still writes what was stored before."""
        self.state = WriterState.ABORTED
        self._cursor = 0
        logger.error(f"{self.name}: schema mismatch, writer aborted ({reason})")
        raise SchemaMismatchError(f"{self.name}: {reason}")

    def _check_finite(self, item: np.ndarray):
        bad = ~np.isfinite(item)
        if bad.any():
            names = [self._names[i] for i in np.flatnonzero(bad)[:5]]
            raise NonFiniteFeatureError(f"{self.name}: non-finite values in {names}")

    def _lock_schema(self, item: np.ndarray):
        for i, name in enumerate(self._names):
            self._labels_file.write(f"[{i}] {name}\n")
        self._labels_file.close()

        self.statistics = RunningStatistics(len(item))
        self._buffer = item.copy()
        self._cursor = 0
        self.state = WriterState.ACCEPTING
        logger.debug(f"{self.name}: schema locked with {len(item)} features")

    # -------------------------------------------------------------------------
    # Consumer
    # -------------------------------------------------------------------------

    def _write_loop(self):
        while True:
            try:
                item = self._queue.get(timeout=0.001)
            except Empty:
                if self._finishing.is_set():
                    break
                continue
            try:
                self.statistics.add(item)
                self._data_file.write(format_vector(item) + "\n")
            except Exception as e:
                logger.error(f"{self.name}: failed to write vector: {e}")
                self._error = e
                break

    def finish(self) -> int:
        """
        Drain the queue, close the data file and write the norm file.

        Returns:
            Number of vectors written
        """
        if self.state in (WriterState.FINISHING, WriterState.CLOSED):
            return self.stored

        self.state = WriterState.FINISHING
        self._finishing.set()
        self._thread.join()
        self._data_file.close()

        if self.statistics is not None:
            std = self.statistics.std()
            std[std < MIN_STD] = 1.0
            self._norm_file.write(format_vector(self.statistics.mean()) + "\n")
            self._norm_file.write(format_vector(std) + "\n")
        self._norm_file.close()

        if not self._labels_file.closed:
            self._labels_file.close()

        self.state = WriterState.CLOSED
        logger.debug(f"{self.name}: finished after {self.stored} vectors")

        if self._error is not None:
            raise RuntimeError(f"{self.name}: writer thread failed") from self._error
        return self.stored

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.finish()
