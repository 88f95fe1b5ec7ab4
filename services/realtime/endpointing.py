"""Energy-based end-of-speech detection over a continuous frame stream."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

import numpy as np

from services.realtime.audio_stream import AudioFrame
from utils.media_validation import rms


@dataclass
class SpeechSegment:
	"""One completed user utterance."""

	frames: List[np.ndarray] = field(default_factory=list)
	sample_rate: int = 16_000
	total_samples: int = 0
	endpointing_latency_ms: int = 0


class Endpointer:
	"""Split a frame stream into speech segments separated by silence.

	A frame whose RMS level reaches ``speech_threshold`` opens (or extends) a
	segment. The segment closes once ``pause_ms`` of consecutive quiet frames
	followed it. Segments with less than ``min_speech_ms`` of voiced audio are
	dropped as noise. Up to ``pre_roll_ms`` of audio preceding the first voiced
	frame is kept so word onsets are not clipped.
	"""

	def __init__(
		self,
		*,
		speech_threshold: float = 0.015,
		pause_ms: int = 700,
		min_speech_ms: int = 200,
		pre_roll_ms: int = 300,
	) -> None:
		self.speech_threshold = speech_threshold
		self.pause_ms = pause_ms
		self.min_speech_ms = min_speech_ms
		self.pre_roll_ms = pre_roll_ms
		self._pre_roll: Deque[AudioFrame] = deque()
		self._pre_roll_ms = 0.0
		self._reset()

	def _reset(self) -> None:
		self._frames: List[np.ndarray] = []
		self._in_speech = False
		self._speech_ms = 0.0
		self._silence_ms = 0.0
		self._sample_rate = 0

	@property
	def in_speech(self) -> bool:
		return self._in_speech

	def feed(self, frame: AudioFrame) -> Optional[SpeechSegment]:
		"""Consume one frame; return a segment when this frame ended one."""
		if len(frame.samples) == 0:
			return None
		voiced = rms(frame.samples) >= self.speech_threshold
		duration = frame.duration_ms

		if not self._in_speech:
			if not voiced:
				self._remember(frame)
				return None
			self._in_speech = True
			self._sample_rate = frame.sample_rate
			self._frames.extend(f.samples for f in self._pre_roll)
			self._pre_roll.clear()
			self._pre_roll_ms = 0.0

		self._frames.append(frame.samples)
		if voiced:
			self._speech_ms += duration
			self._silence_ms = 0.0
			return None

		self._silence_ms += duration
		if self._silence_ms >= self.pause_ms:
			return self._close()
		return None

	def flush(self) -> Optional[SpeechSegment]:
		"""Close any open segment at end of stream."""
		if not self._in_speech:
			return None
		return self._close()

	def _close(self) -> Optional[SpeechSegment]:
		segment = None
		if self._speech_ms >= self.min_speech_ms:
			segment = SpeechSegment(
				frames=self._frames,
				sample_rate=self._sample_rate,
				total_samples=int(sum(len(f) for f in self._frames)),
				endpointing_latency_ms=int(round(self._silence_ms)),
			)
		self._reset()
		return segment

	def _remember(self, frame: AudioFrame) -> None:
		self._pre_roll.append(frame)
		self._pre_roll_ms += frame.duration_ms
		while self._pre_roll and self._pre_roll_ms - self._pre_roll[0].duration_ms >= self.pre_roll_ms:
			dropped = self._pre_roll.popleft()
			self._pre_roll_ms -= dropped.duration_ms
