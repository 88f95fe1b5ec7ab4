"""Group streamed LLM text into sentences ready for synthesis."""

from __future__ import annotations

import re
from typing import AsyncIterable, AsyncIterator, List, Tuple

_SENTENCE_END = re.compile(r"(?<=[.!?])[\"')\]]*\s+")


def split_complete(buffer: str) -> Tuple[List[str], str]:
	"""Return the complete sentences in ``buffer`` and the unfinished tail."""
	sentences: List[str] = []
	start = 0
	for match in _SENTENCE_END.finditer(buffer):
		sentence = buffer[start:match.end()].strip()
		if sentence:
			sentences.append(sentence)
		start = match.end()
	return sentences, buffer[start:]


async def chunk_sentences(deltas: AsyncIterable[str]) -> AsyncIterator[str]:
	"""Yield whole sentences as soon as the stream has produced them."""
	buffer = ""
	async for delta in deltas:
		buffer += delta
		ready, buffer = split_complete(buffer)
		for sentence in ready:
			yield sentence
	tail = buffer.strip()
	if tail:
		yield tail
