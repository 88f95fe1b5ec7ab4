"""Utilities for turning OpenAI failures into pipeline error values."""

import asyncio
from typing import Optional

import openai

from models.pipeline_results import ErrorResult, StatusCode


def status_for_exception(exc: BaseException) -> StatusCode:
    """Map an exception raised by the OpenAI client to a status code.

    Args:
        exc: Exception raised while calling OpenAI.

    Returns:
        The closest gRPC-style status code.
    """
    if isinstance(exc, (openai.APITimeoutError, asyncio.TimeoutError, TimeoutError)):
        return StatusCode.DEADLINE_EXCEEDED
    if isinstance(exc, openai.APIConnectionError):
        return StatusCode.UNAVAILABLE
    if isinstance(exc, (openai.BadRequestError, ValueError)):
        return StatusCode.INVALID_ARGUMENT
    if isinstance(exc, openai.RateLimitError):
        return StatusCode.UNAVAILABLE
    if isinstance(exc, openai.APIError):
        return StatusCode.INTERNAL
    return StatusCode.UNKNOWN


def error_result_from_exception(exc: BaseException, interaction_id: Optional[str] = None) -> ErrorResult:
    """Wrap ``exc`` as an :class:`ErrorResult` the coordinator can classify."""
    code = status_for_exception(exc)
    message = str(exc) or exc.__class__.__name__
    if code is StatusCode.DEADLINE_EXCEEDED and "timed out" not in message.lower():
        message = f"Request timed out: {message}"
    return ErrorResult(message=message, code=int(code), interaction_id=interaction_id)
