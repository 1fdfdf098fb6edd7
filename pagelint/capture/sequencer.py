"""Drive the fetcher over the page list, one request at a time."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, Optional

import httpx

from pagelint.capture.fetcher import build_client, fetch_page
from pagelint.capture.models import CapturedPage, FetchOutcome, PageSpec
from pagelint.errors import PipelineError

logger = logging.getLogger(__name__)


def fetch_all(
    base_url: str,
    pages: Iterable[PageSpec],
    output_dir: Path,
    client: Optional[httpx.Client] = None,
    on_fetch: Optional[Callable[[str, Path], None]] = None,
) -> FetchOutcome:
    """Capture *pages* in order into *output_dir*.

    Only one request is ever in flight.  The first failure stops the run:
    later pages are not attempted, and the returned :class:`FetchOutcome`
    holds the pages already captured together with the error.  Unexpected
    exceptions are recorded the same way rather than raised.

    Args:
        base_url: Root URL of the running application server.
        pages: Pages to capture, in the order they should be fetched.
        output_dir: Directory the capture files are written to.
        client: Optional shared ``httpx.Client``; one is created (and closed)
            for the run otherwise.
        on_fetch: Called with ``(url, output_path)`` just before each request,
            so the CLI can echo progress.
    """
    owns_client = client is None
    if owns_client:
        client = build_client()

    outcome = FetchOutcome()
    try:
        for page in pages:
            output_path = Path(output_dir) / page.output_name
            if on_fetch is not None:
                on_fetch(page.url(base_url), output_path)
            try:
                captured: CapturedPage = fetch_page(base_url, page, output_path, client=client)
            except PipelineError as exc:
                logger.error("capture stopped at page %r: %s", page.name, exc)
                outcome.error = exc
                outcome.failed_page = page
                break
            except Exception as exc:
                # partial captures still reach the caller
                logger.exception("capture of page %r failed unexpectedly", page.name)
                outcome.error = exc
                outcome.failed_page = page
                break
            outcome.captured.append(captured)
    finally:
        if owns_client:
            client.close()

    logger.info("captured %d page(s)", len(outcome.captured))
    return outcome
