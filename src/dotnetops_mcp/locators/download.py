"""Downloads of helper tools and scripts."""

from __future__ import annotations

import logging
import os

import httpx

from ..results.state import OperationError

logger = logging.getLogger(__name__)

DOWNLOAD_TIMEOUT: float = 120.0


async def download_file(url: str, destination: str, timeout: float = DOWNLOAD_TIMEOUT) -> str:
    """Download a file, replacing any previous copy only once complete.

    Raises:
        OperationError: If the request fails or returns an error status
    """
    partial = destination + ".part"
    logger.info(f"Downloading {url} to {destination}")
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                with open(partial, "wb") as f:
                    async for chunk in response.aiter_bytes():
                        f.write(chunk)
    except httpx.TimeoutException as e:
        raise OperationError(f"Timed out downloading {url}.") from e
    except httpx.HTTPStatusError as e:
        raise OperationError(
            f"Download of {url} failed with HTTP {e.response.status_code}."
        ) from e
    except httpx.HTTPError as e:
        raise OperationError(f"Download of {url} failed: {e}") from e

    os.replace(partial, destination)
    return destination
