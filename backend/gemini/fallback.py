"""
Model fallback for generate_content.

A quota error (429 or RESOURCE_EXHAUSTED) on one model moves the call to the
next model of the chain; any other error is raised to the caller. When the
whole chain is rate-limited the result is None and the client treats it as
an empty response.
"""

import logging
from typing import Any, Optional, Sequence

from gemini.config import GEMINI_MODEL_CHAIN

logger = logging.getLogger(__name__)


def is_quota_error(exc: Exception) -> bool:
    err_str = str(exc)
    return "429" in err_str or "RESOURCE_EXHAUSTED" in err_str


async def generate_with_fallback(
    client, *, contents, config, models: Optional[Sequence[str]] = None
) -> Optional[Any]:
    """
    Return the first successful response from `models` (default: the
    configured chain), or None if every model hit its quota.
    """
    chain = list(models) if models else GEMINI_MODEL_CHAIN
    for model in chain:
        try:
            return await client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except Exception as e:
            if is_quota_error(e):
                logger.warning("Model %r quota exhausted, trying next in chain", model)
                continue
            raise

    logger.error("All models in fallback chain exhausted: %s", chain)
    return None
