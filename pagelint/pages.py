"""The compiled-in list of pages captured on every run, in fetch order."""

from __future__ import annotations

from pagelint.capture.models import PageSpec

PAGES: tuple[PageSpec, ...] = tuple(
    PageSpec(name)
    for name in (
        "",
        "fontawesome",
        "bootswatch",
        "bootlint",
        "legacy",
        "showcase",
        "integrations",
    )
)
