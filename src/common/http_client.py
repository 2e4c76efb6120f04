"""Shared HTTP helpers used by the fetch collaborators.

Encapsulates request/timeout error handling and retry policy so the
installer modules avoid duplicating try/except blocks. Failures surface as
``DownloadError``; nothing in here exits the process.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Optional

import requests

from constants import Constants
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)


class DownloadError(Exception):
    """Raised when a URL could not be downloaded after all retries."""

    def __init__(self, url: str, reason: str, status_code: Optional[int] = None):
        super().__init__(f"{safe_url(url)}: {reason}")
        self.url = url
        self.reason = reason
        self.status_code = status_code


def download_file(url: str, dest: str, *, context: str, **kwargs: Any) -> str:
    """Stream ``url`` into ``dest`` with timeout, retries and DEBUG traces.

    The body is written to ``dest + ".incomplete"`` and renamed on success so
    an interrupted transfer never leaves a truncated file at ``dest``.

    Returns:
        The destination path.

    Raises:
        DownloadError: on HTTP status >= 400 or after the last failed attempt.
    """
    safe_target = safe_url(url)
    partial = dest + ".incomplete"
    last_reason = "no attempt made"

    for attempt in range(Constants.HTTP_RETRY_MAX):
        with Timer() as t:
            if is_debug_enabled(logger):
                logger.debug(
                    "HTTP request",
                    extra=extra_context(
                        event="http_request",
                        component="http_client",
                        action="GET",
                        target=safe_target,
                        context=context,
                        attempt=attempt + 1,
                    ),
                )
            try:
                with requests.get(
                    url, stream=True, timeout=Constants.REQUEST_TIMEOUT, **kwargs
                ) as res:
                    if res.status_code >= 400:
                        # Client errors will not get better on retry
                        if res.status_code < 500:
                            raise DownloadError(url, f"HTTP {res.status_code}", res.status_code)
                        last_reason = f"HTTP {res.status_code}"
                    else:
                        with open(partial, "wb") as fh:
                            for chunk in res.iter_content(chunk_size=Constants.DOWNLOAD_CHUNK_SIZE):
                                if chunk:
                                    fh.write(chunk)
                        os.replace(partial, dest)
                        if is_debug_enabled(logger):
                            logger.debug(
                                "HTTP download complete",
                                extra=extra_context(
                                    event="http_response",
                                    component="http_client",
                                    action="GET",
                                    outcome="success",
                                    status_code=res.status_code,
                                    duration_ms=t.duration_ms(),
                                    target=safe_target,
                                    context=context,
                                ),
                            )
                        return dest
            except requests.Timeout:
                last_reason = f"timed out after {Constants.REQUEST_TIMEOUT} seconds"
            except requests.RequestException as exc:  # includes ConnectionError
                last_reason = f"connection error: {exc}"
            finally:
                if os.path.exists(partial):
                    os.remove(partial)

        logger.warning(
            "%s download attempt %d/%d failed: %s",
            context,
            attempt + 1,
            Constants.HTTP_RETRY_MAX,
            last_reason,
        )
        if attempt + 1 < Constants.HTTP_RETRY_MAX:
            time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (2 ** attempt))

    raise DownloadError(url, last_reason)
