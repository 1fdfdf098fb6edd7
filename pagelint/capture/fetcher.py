"""HTTP fetcher that streams a rendered page straight to disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import httpx

from pagelint.capture.models import CapturedPage, PageSpec
from pagelint.config import settings
from pagelint.errors import CaptureWriteError, PageConnectionError, PageFetchError

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "User-Agent": "pagelint/1.0 (+markup validation)",
}


def _discard_partial(path: Path) -> None:
    # A half-written capture is never handed to the checker.
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("could not remove partial capture %s: %s", path, exc)


def build_client(timeout: Optional[float] = None) -> httpx.Client:
    """Return the ``httpx.Client`` used for page captures."""
    return httpx.Client(
        headers=_DEFAULT_HEADERS,
        timeout=settings.request_timeout if timeout is None else timeout,
        follow_redirects=True,
    )


def fetch_page(
    base_url: str,
    page: PageSpec,
    output_path: Path,
    client: Optional[httpx.Client] = None,
) -> CapturedPage:
    """GET *page* from *base_url* and write the body to *output_path*.

    The response body is streamed chunk by chunk; the function returns only
    after the file has been flushed and closed.  Non-2xx responses are still
    written so the markup checker can flag the broken page itself.

    Raises:
        PageConnectionError: If the server could not be reached.
        PageFetchError: For any other HTTP-level failure, such as a redirect
            loop or a body that cannot be decoded.
        CaptureWriteError: If the output file could not be written.
    """
    url = page.url(base_url)
    owns_client = client is None
    if owns_client:
        client = build_client()

    written = 0
    try:
        with client.stream("GET", url) as response:
            if not response.is_success:
                logger.warning(
                    "%s returned HTTP %d; capturing body anyway", url, response.status_code
                )
            try:
                with open(output_path, "wb") as fh:
                    for chunk in response.iter_bytes():
                        fh.write(chunk)
                        written += len(chunk)
            except OSError as exc:
                raise CaptureWriteError(
                    f"could not write {output_path}: {exc}", stage="fetch", page=page.name
                ) from exc
            status_code = response.status_code
    except httpx.TransportError as exc:
        _discard_partial(output_path)
        raise PageConnectionError(
            f"could not fetch {url}: {exc}", stage="fetch", page=page.name
        ) from exc
    except (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError) as exc:
        _discard_partial(output_path)
        raise PageFetchError(
            f"could not fetch {url}: {type(exc).__name__}: {exc}", stage="fetch", page=page.name
        ) from exc
    except CaptureWriteError:
        _discard_partial(output_path)
        raise
    finally:
        if owns_client:
            client.close()

    logger.debug("captured %s -> %s (%d bytes)", url, output_path, written)
    return CapturedPage(
        page=page, path=output_path, bytes_written=written, status_code=status_code
    )
