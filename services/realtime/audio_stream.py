"""Push/pull bridges between the websocket transport and the pipeline."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Deque, Generic, TypeVar

import numpy as np

T = TypeVar("T")


@dataclass
class AudioFrame:
	"""Mono float32 samples captured by the client microphone."""

	samples: np.ndarray
	sample_rate: int

	@property
	def duration_ms(self) -> float:
		if not self.sample_rate:
			return 0.0
		return 1000.0 * len(self.samples) / self.sample_rate


class PushStream(Generic[T]):
	"""Unbounded single-consumer queue exposed as an async iterator.

	``push`` never blocks. Iteration suspends while the queue is empty and
	finishes once ``end`` was called and every queued item was yielded.
	"""

	def __init__(self) -> None:
		self._items: Deque[T] = deque()
		self._ended = False
		self._wakeup = asyncio.Event()
		self._consumer_attached = False

	@property
	def ended(self) -> bool:
		return self._ended

	def __len__(self) -> int:
		return len(self._items)

	def push(self, item: T) -> None:
		"""Append an item; silently ignored after :meth:`end`."""
		if self._ended:
			return
		self._items.append(item)
		self._wakeup.set()

	def end(self) -> None:
		"""Signal that no more items will arrive. Safe to call repeatedly."""
		self._ended = True
		self._wakeup.set()

	def as_sequence(self) -> AsyncIterator[T]:
		"""Return the one and only consumer iterator for this stream."""
		if self._consumer_attached:
			raise RuntimeError("Stream already has a consumer.")
		self._consumer_attached = True
		return self._drain()

	async def _drain(self) -> AsyncIterator[T]:
		while True:
			if self._items:
				yield self._items.popleft()
				continue
			if self._ended:
				return
			self._wakeup.clear()
			await self._wakeup.wait()


class AudioStreamBuffer(PushStream[AudioFrame]):
	"""Collect microphone frames from the transport for one audio activation."""

	def __init__(self) -> None:
		super().__init__()
		self.frames_pushed = 0
		self.samples_pushed = 0

	def push(self, frame: AudioFrame) -> None:
		if self.ended:
			return
		self.frames_pushed += 1
		self.samples_pushed += len(frame.samples)
		super().push(frame)
