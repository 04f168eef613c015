"""Paginated stream runner: turns an ``(offset, limit)`` fetcher into a bounded lazy sequence."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 20


class StreamableRunner:
    """Builder-style pagination knobs.

    Example::

        runner = StreamableRunner().change_batch_size_at(100, 1).stop_at(2)
        for batch in runner.run(lambda offset, limit: client.search("frieren", offset, limit)):
            ...
    """

    def __init__(self) -> None:
        self.batch_size = DEFAULT_BATCH_SIZE
        self.max_batches: int | None = None
        self.early_stop = False
        self.new_batch_size: int | None = None
        self.new_batch_index: int | None = None

    def with_batch_size(self, size: int) -> StreamableRunner:
        if size > 0:
            self.batch_size = size
        return self

    def stop_early(self) -> StreamableRunner:
        """End the stream after the first batch shorter than requested."""
        self.early_stop = True
        return self

    def change_batch_size_at(self, new_size: int, index: int) -> StreamableRunner:
        """Use ``new_size`` from the call with zero-based index ``index`` onwards."""
        if new_size > 0 and index >= 0:
            self.new_batch_size = new_size
            self.new_batch_index = index
        return self

    def stop_at(self, limit: int) -> StreamableRunner:
        """Yield at most ``limit`` batches."""
        if limit >= 0:
            self.max_batches = limit
        return self

    def run(self, fetch: Callable[[int, int], Sequence[T] | None]) -> Iterator[Sequence[T]]:
        """Lazily call ``fetch(offset, size)`` until a terminal condition.

        Stops on a ``None`` or empty batch, on the batch limit, or (with
        ``stop_early``) after a short batch. The iterator is not restartable.
        """
        offset = 0
        size = self.batch_size
        iteration = 0
        stop_flag = False
        while True:
            if stop_flag or (self.max_batches is not None and iteration >= self.max_batches):
                return
            if self.new_batch_index is not None and iteration == self.new_batch_index:
                size = self.new_batch_size or size
            batch = fetch(offset, size)
            if not batch:
                logger.debug("Stream ended at offset %d after %d batches", offset, iteration)
                return
            offset += size
            if self.early_stop and len(batch) < size:
                stop_flag = True
            iteration += 1
            yield batch


__all__ = ["DEFAULT_BATCH_SIZE", "StreamableRunner"]
