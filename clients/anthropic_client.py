"""
Async Anthropic client for the Claude-backed capabilities.
Lazy singleton; every call is bounded by a wall-clock timeout.
"""

import os
import time
import asyncio
import logging
from typing import Any, AsyncIterator, Optional

import anthropic
from anthropic import AsyncAnthropic
from dotenv import load_dotenv

from utils.exceptions import CapabilityError, CapabilityTimeoutError, CapabilityUnavailableError

load_dotenv()

logger = logging.getLogger(__name__)

_anthropic_client: Optional[AsyncAnthropic] = None

NOT_CONFIGURED_MESSAGE = "ANTHROPIC_API_KEY not configured."


def is_configured() -> bool:
    return bool(os.getenv("ANTHROPIC_API_KEY", "").strip())


def get_anthropic() -> AsyncAnthropic:
    global _anthropic_client
    if _anthropic_client is None:
        if not is_configured():
            raise CapabilityUnavailableError(NOT_CONFIGURED_MESSAGE)
        # Timeouts are enforced per call with asyncio.wait_for; no SDK retries
        _anthropic_client = AsyncAnthropic(api_key=os.getenv("ANTHROPIC_API_KEY"), max_retries=0)
    return _anthropic_client


def text_of(response: Any) -> str:
    # Concatenate only text blocks; web_search returns mixed blocks
    content = ""
    for block in getattr(response, "content", None) or []:
        if hasattr(block, "text"):
            content += getattr(block, "text", "") or ""
    return content


async def create_message(operation: str, timeout_seconds: float, **params) -> Any:
    """Call messages.create, translating timeouts and SDK errors into capability errors."""
    client = get_anthropic()
    start = time.time()
    try:
        response = await asyncio.wait_for(client.messages.create(**params), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.error(f"Claude {operation} timed out after {timeout_seconds:g}s")
        raise CapabilityTimeoutError(operation, timeout_seconds)
    except anthropic.APIError as e:
        logger.error(f"Claude API error during {operation}: {e}")
        raise CapabilityError(f"Claude API error: {e}", context={"operation": operation})

    logger.info(
        f"Claude {operation}: stop_reason={getattr(response, 'stop_reason', None)} "
        f"in {time.time() - start:.1f}s"
    )
    return response


async def stream_text(operation: str, timeout_seconds: float, **params) -> AsyncIterator[str]:
    """Stream text deltas from messages.stream within an overall deadline."""
    client = get_anthropic()
    deadline = time.monotonic() + timeout_seconds
    try:
        async with client.messages.stream(**params) as stream:
            iterator = stream.text_stream.__aiter__()
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise asyncio.TimeoutError()
                try:
                    chunk = await asyncio.wait_for(iterator.__anext__(), timeout=remaining)
                except StopAsyncIteration:
                    break
                if chunk:
                    yield chunk
    except asyncio.TimeoutError:
        logger.error(f"Claude {operation} stream timed out after {timeout_seconds:g}s")
        raise CapabilityTimeoutError(operation, timeout_seconds)
    except anthropic.APIError as e:
        logger.error(f"Claude API error during {operation} stream: {e}")
        raise CapabilityError(f"Claude API error: {e}", context={"operation": operation})
