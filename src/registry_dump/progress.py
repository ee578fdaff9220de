"""Progress reporting and output sinks used by the dump pipeline."""

import json
import logging
import time
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, TextIO, Union

import aiofiles
from tqdm import tqdm

from .models import ImageWithManifests

logger = logging.getLogger(__name__)


class ProgressReporter(Protocol):
    def increment(self, n: int = 1) -> None: ...


class OutputSink(Protocol):
    async def emit(self, image: ImageWithManifests) -> None: ...

    async def flush(self) -> None: ...


class NullProgress:
    """Progress reporter that ignores all updates."""

    def increment(self, n: int = 1) -> None:
        pass


class CallbackProgress:
    """Forward progress to a ``callback(done, total, message)`` callable."""

    def __init__(
        self,
        callback: Callable[[int, int, str], Any],
        total: Optional[int] = None,
        message: str = "",
    ) -> None:
        self.callback = callback
        self.total = total or 0
        self.message = message
        self.done = 0

    def increment(self, n: int = 1) -> None:
        self.done += n
        self.callback(self.done, self.total, self.message)


class LoggingProgress:
    """Log a throughput line at most once per ``interval`` seconds."""

    def __init__(self, name: str, total: Optional[int] = None, interval: float = 5.0):
        self.name = name
        self.total = total
        self.interval = interval
        self.done = 0
        self._started = time.monotonic()
        self._last_logged = self._started

    def increment(self, n: int = 1) -> None:
        self.done += n
        now = time.monotonic()
        finished = self.total is not None and self.done >= self.total
        if now - self._last_logged < self.interval and not finished:
            return
        self._last_logged = now
        rate = self.done / max(now - self._started, 1e-9)
        if self.total:
            logger.info(
                f"{self.name}: {self.done}/{self.total} "
                f"({100 * self.done // self.total}%) {rate:.1f}/s"
            )
        else:
            logger.info(f"{self.name}: {self.done} {rate:.1f}/s")


class TqdmProgress:
    """Render progress as a tqdm bar, closed when used as a context manager."""

    def __init__(
        self,
        desc: str,
        total: Optional[int] = None,
        unit: str = "it",
        file: Optional[TextIO] = None,
    ) -> None:
        self.pbar = tqdm(total=total, desc=desc, unit=unit, file=file)

    def __enter__(self) -> "TqdmProgress":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def done(self) -> int:
        return self.pbar.n

    def increment(self, n: int = 1) -> None:
        self.pbar.update(n)

    def close(self) -> None:
        self.pbar.close()


class JsonLinesSink:
    """Write one JSON record per resolved manifest to a file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.records_written = 0
        self._file = None

    async def __aenter__(self) -> "JsonLinesSink":
        self._file = await aiofiles.open(self.path, "w", encoding="utf-8")
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._file is not None:
            await self._file.flush()
            await self._file.close()
            self._file = None

    async def emit(self, image: ImageWithManifests) -> None:
        if self._file is None:
            raise RuntimeError("Sink is not open, use 'async with'")
        lines = [json.dumps(record) + "\n" for record in image.records()]
        await self._file.write("".join(lines))
        self.records_written += len(lines)

    async def flush(self) -> None:
        if self._file is not None:
            await self._file.flush()


class MemorySink:
    """Collect emitted images and their records in memory."""

    def __init__(self) -> None:
        self.images: list[ImageWithManifests] = []
        self.records: list[dict[str, Any]] = []
        self.flushes = 0

    async def emit(self, image: ImageWithManifests) -> None:
        self.images.append(image)
        self.records.extend(image.records())

    async def flush(self) -> None:
        self.flushes += 1
