"""
Client for the lint micro-service.

POST {base_url}/lint with {"code": ...}. Any failure (unreachable, timeout,
non-2xx, unexpected body) yields None; callers treat that as "no lint
result for this file".
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from models.analysis import LintResult

logger = logging.getLogger(__name__)

LINT_TIMEOUT = 3.0   # seconds


class LintClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = LINT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def lint(self, code: str) -> Optional[LintResult]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(f"{self._base_url}/lint", json={"code": code})
                response.raise_for_status()
                return LintResult.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as exc:
            logger.warning("Lint service unavailable at %s: %s", self._base_url, exc)
            return None
