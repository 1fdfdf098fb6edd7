"""Capture package: fetch rendered pages to disk."""

from pagelint.capture.fetcher import fetch_page
from pagelint.capture.models import CapturedPage, FetchOutcome, PageSpec
from pagelint.capture.sequencer import fetch_all

__all__ = ["fetch_page", "fetch_all", "PageSpec", "CapturedPage", "FetchOutcome"]
