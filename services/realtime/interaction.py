"""Track which interaction currently owns a session's output."""

from __future__ import annotations

from collections import deque
from typing import Deque, Optional, Set
from uuid import uuid4


class InteractionTracker:
	"""Hold the current interaction id; superseded ids never come back.

	Ids only move forward: once an id is replaced it is retired, and a late
	attempt to adopt it again is ignored. That keeps a slow, stale turn from
	reclaiming the session after the user already started a new one.
	"""

	def __init__(self, retired_capacity: int = 256) -> None:
		self.current_id: Optional[str] = None
		self._retired: Deque[str] = deque(maxlen=retired_capacity)
		self._retired_ids: Set[str] = set()

	def mint(self) -> str:
		"""Start a new interaction and make it current."""
		interaction_id = uuid4().hex
		self._replace(interaction_id)
		return interaction_id

	def adopt(self, interaction_id: Optional[str]) -> bool:
		"""Make a pipeline-assigned id current. Returns True if it changed."""
		if not interaction_id or interaction_id == self.current_id:
			return False
		if interaction_id in self._retired_ids:
			return False
		self._replace(interaction_id)
		return True

	def is_stale(self, interaction_id: Optional[str]) -> bool:
		if interaction_id is None or self.current_id is None:
			return False
		return interaction_id != self.current_id

	def _replace(self, interaction_id: str) -> None:
		previous = self.current_id
		if previous is not None and previous not in self._retired_ids:
			if len(self._retired) == self._retired.maxlen:
				self._retired_ids.discard(self._retired[0])
			self._retired.append(previous)
			self._retired_ids.add(previous)
		self.current_id = interaction_id
