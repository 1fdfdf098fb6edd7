"""Tests for the capture stage (single fetch + sequential fetch).

Mocking strategy:
- ``respx`` patches ``httpx`` at the transport layer so no real network calls
  are made; connection failures are simulated with ``httpx.ConnectError``.
- Output files are written to pytest's ``tmp_path``.
"""

from __future__ import annotations

import httpx
import pytest
import respx

from pagelint.capture.fetcher import fetch_page
from pagelint.capture.models import CapturedPage, PageSpec
from pagelint.capture.sequencer import fetch_all
from pagelint.errors import CaptureWriteError, PageConnectionError, PageFetchError
from pagelint.pages import PAGES

_BASE = "http://localhost:3080"

_HTML = """\
<!DOCTYPE html>
<html lang="en">
<head><title>Home</title></head>
<body><div class="container"><p>Hello</p></div></body>
</html>
"""


# ---------------------------------------------------------------------------
# PageSpec
# ---------------------------------------------------------------------------

class TestPageSpec:
    def test_root_url_has_no_trailing_page_slash(self) -> None:
        assert PageSpec("").url(_BASE) == "http://localhost:3080/"

    def test_named_page_url_ends_with_slash(self) -> None:
        assert PageSpec("legacy").url(_BASE) == "http://localhost:3080/legacy/"

    def test_base_url_trailing_slash_is_tolerated(self) -> None:
        assert PageSpec("foo").url(_BASE + "/") == "http://localhost:3080/foo/"

    def test_output_names(self) -> None:
        assert PageSpec("").output_name == "lint.html"
        assert PageSpec("showcase").output_name == "showcase_lint.html"

    def test_compiled_in_pages_start_with_root(self) -> None:
        assert PAGES[0] == PageSpec("")
        assert len({p.name for p in PAGES}) == len(PAGES)


# ---------------------------------------------------------------------------
# fetch_page
# ---------------------------------------------------------------------------

class TestFetchPage:
    def test_writes_body_to_disk(self, tmp_path) -> None:
        out = tmp_path / "lint.html"
        with respx.mock:
            respx.get(f"{_BASE}/").mock(return_value=httpx.Response(200, text=_HTML))
            captured = fetch_page(_BASE, PageSpec(""), out)

        assert isinstance(captured, CapturedPage)
        assert captured.path == out
        assert captured.status_code == 200
        assert out.read_text(encoding="utf-8") == _HTML
        assert captured.bytes_written == len(_HTML.encode("utf-8"))

    def test_non_2xx_body_is_still_captured(self, tmp_path) -> None:
        out = tmp_path / "missing_lint.html"
        with respx.mock:
            respx.get(f"{_BASE}/missing/").mock(
                return_value=httpx.Response(404, text="<html>Not Found</html>")
            )
            captured = fetch_page(_BASE, PageSpec("missing"), out)

        assert captured.status_code == 404
        assert out.read_text(encoding="utf-8") == "<html>Not Found</html>"

    def test_stale_file_is_overwritten(self, tmp_path) -> None:
        out = tmp_path / "lint.html"
        out.write_text("stale content from a previous run " * 20, encoding="utf-8")
        with respx.mock:
            respx.get(f"{_BASE}/").mock(return_value=httpx.Response(200, text=_HTML))
            fetch_page(_BASE, PageSpec(""), out)

        assert out.read_text(encoding="utf-8") == _HTML

    def test_connection_refused_raises(self, tmp_path) -> None:
        out = tmp_path / "lint.html"
        with respx.mock:
            respx.get(f"{_BASE}/").mock(side_effect=httpx.ConnectError("Connection refused"))
            with pytest.raises(PageConnectionError) as excinfo:
                fetch_page(_BASE, PageSpec(""), out)

        assert isinstance(excinfo.value, ConnectionError)
        assert excinfo.value.stage == "fetch"
        assert excinfo.value.page == ""
        assert not out.exists()

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.TooManyRedirects("Exceeded maximum allowed redirects."),
            httpx.DecodingError("Error -3 while decompressing data"),
        ],
        ids=["redirect-loop", "bad-encoding"],
    )
    def test_other_http_errors_raise_fetch_error(self, tmp_path, exc) -> None:
        out = tmp_path / "foo_lint.html"
        with respx.mock:
            respx.get(f"{_BASE}/foo/").mock(side_effect=exc)
            with pytest.raises(PageFetchError) as excinfo:
                fetch_page(_BASE, PageSpec("foo"), out)

        assert excinfo.value.page == "foo"
        assert excinfo.value.exit_code == 2
        assert isinstance(excinfo.value.__cause__, type(exc))
        assert type(exc).__name__ in str(excinfo.value)
        assert not out.exists()

    def test_unwritable_output_raises_capture_write_error(self, tmp_path) -> None:
        out = tmp_path / "no-such-dir" / "foo_lint.html"
        with respx.mock:
            respx.get(f"{_BASE}/foo/").mock(return_value=httpx.Response(200, text=_HTML))
            with pytest.raises(CaptureWriteError) as excinfo:
                fetch_page(_BASE, PageSpec("foo"), out)

        assert isinstance(excinfo.value, OSError)
        assert excinfo.value.page == "foo"
        assert "foo" in str(excinfo.value)

    def test_uses_supplied_client(self, tmp_path) -> None:
        out = tmp_path / "lint.html"
        with respx.mock:
            respx.get(f"{_BASE}/").mock(return_value=httpx.Response(200, text=_HTML))
            with httpx.Client() as client:
                fetch_page(_BASE, PageSpec(""), out, client=client)
                assert not client.is_closed


# ---------------------------------------------------------------------------
# fetch_all
# ---------------------------------------------------------------------------

class TestFetchAll:
    def test_captures_every_page_in_order(self, tmp_path) -> None:
        pages = [PageSpec(""), PageSpec("foo"), PageSpec("bar"), PageSpec("baz")]
        with respx.mock:
            for page in pages:
                respx.get(page.url(_BASE)).mock(
                    return_value=httpx.Response(200, text=f"<p>{page.name}</p>")
                )
            outcome = fetch_all(_BASE, pages, tmp_path)

        assert outcome.ok
        assert [c.page for c in outcome.captured] == pages
        assert outcome.paths == [tmp_path / p.output_name for p in pages]
        assert all(p.exists() for p in outcome.paths)

    def test_first_failure_stops_the_run(self, tmp_path) -> None:
        pages = [PageSpec(""), PageSpec("foo"), PageSpec("bar"), PageSpec("baz")]
        with respx.mock(assert_all_called=False) as respx_mock:
            root = respx_mock.get(f"{_BASE}/").mock(return_value=httpx.Response(200, text=_HTML))
            foo = respx_mock.get(f"{_BASE}/foo/").mock(return_value=httpx.Response(200, text=_HTML))
            bar = respx_mock.get(f"{_BASE}/bar/").mock(side_effect=httpx.ConnectError("refused"))
            baz = respx_mock.get(f"{_BASE}/baz/").mock(return_value=httpx.Response(200, text=_HTML))
            outcome = fetch_all(_BASE, pages, tmp_path)

        assert not outcome.ok
        assert isinstance(outcome.error, PageConnectionError)
        assert outcome.failed_page == PageSpec("bar")
        assert [c.page.name for c in outcome.captured] == ["", "foo"]
        assert root.call_count == 1
        assert foo.call_count == 1
        assert bar.call_count == 1
        assert not baz.called

    def test_raise_for_error_reraises(self, tmp_path) -> None:
        with respx.mock:
            respx.get(f"{_BASE}/").mock(side_effect=httpx.ConnectError("refused"))
            outcome = fetch_all(_BASE, [PageSpec("")], tmp_path)

        assert outcome.captured == []
        with pytest.raises(PageConnectionError):
            outcome.raise_for_error()

    def test_redirect_loop_keeps_earlier_captures(self, tmp_path) -> None:
        pages = [PageSpec(""), PageSpec("foo"), PageSpec("bar")]
        with respx.mock(assert_all_called=False) as respx_mock:
            respx_mock.get(f"{_BASE}/").mock(return_value=httpx.Response(200, text=_HTML))
            respx_mock.get(f"{_BASE}/foo/").mock(side_effect=httpx.TooManyRedirects("loop"))
            bar = respx_mock.get(f"{_BASE}/bar/")
            outcome = fetch_all(_BASE, pages, tmp_path)

        assert isinstance(outcome.error, PageFetchError)
        assert outcome.failed_page == PageSpec("foo")
        assert outcome.paths == [tmp_path / "lint.html"]
        assert not (tmp_path / "foo_lint.html").exists()
        assert not bar.called

    def test_unexpected_error_is_recorded_not_raised(self, tmp_path, monkeypatch) -> None:
        real_fetch = fetch_page

        def flaky(base_url, page, output_path, client=None):
            if page.name == "foo":
                raise RuntimeError("boom")
            return real_fetch(base_url, page, output_path, client=client)

        monkeypatch.setattr("pagelint.capture.sequencer.fetch_page", flaky)
        with respx.mock:
            respx.get(f"{_BASE}/").mock(return_value=httpx.Response(200, text=_HTML))
            outcome = fetch_all(_BASE, [PageSpec(""), PageSpec("foo")], tmp_path)

        assert isinstance(outcome.error, RuntimeError)
        assert outcome.failed_page == PageSpec("foo")
        assert outcome.paths == [tmp_path / "lint.html"]
        with pytest.raises(RuntimeError):
            outcome.raise_for_error()

    def test_on_fetch_reports_each_request(self, tmp_path) -> None:
        seen = []
        pages = [PageSpec(""), PageSpec("foo")]
        with respx.mock:
            respx.get(f"{_BASE}/").mock(return_value=httpx.Response(200, text=_HTML))
            respx.get(f"{_BASE}/foo/").mock(return_value=httpx.Response(200, text=_HTML))
            fetch_all(_BASE, pages, tmp_path, on_fetch=lambda url, path: seen.append((url, path)))

        assert seen == [
            (f"{_BASE}/", tmp_path / "lint.html"),
            (f"{_BASE}/foo/", tmp_path / "foo_lint.html"),
        ]

    def test_empty_page_list(self, tmp_path) -> None:
        outcome = fetch_all(_BASE, [], tmp_path)
        assert outcome.ok
        assert outcome.captured == []
