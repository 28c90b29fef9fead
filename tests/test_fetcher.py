import hashlib
import os
import threading
import time

import httpx
import pytest

from email2epub.fetcher import Fetcher


class FakeServer:
    """Serves fixed bodies and records every request it sees."""

    def __init__(self, routes):
        self.routes = routes
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append((request.method, str(request.url)))
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, content=b"not found")
        if isinstance(route, Exception):
            raise route
        status, body, headers = route
        if request.method == "HEAD":
            return httpx.Response(status, headers={"Content-Length": str(len(body)), **headers})
        return httpx.Response(status, content=body, headers=headers)

    def count(self, method, url=None):
        return sum(1 for m, u in self.requests if m == method and (url is None or u == url))


def make_fetcher(dest, server, **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(server))
    return Fetcher(str(dest), client=client, **kwargs)


def test_local_path_is_md5_of_url_plus_extension(tmp_path):
    fetcher = Fetcher(str(tmp_path), client=httpx.Client())
    url = "https://example.com/img/a.png?size=2"

    expected = hashlib.md5(url.encode("utf-8")).hexdigest() + ".png"
    assert fetcher.local_path_for(url) == os.path.join(str(tmp_path), expected)
    assert fetcher.local_path_for(url) == fetcher.local_path_for(url)


def test_duplicate_urls_are_downloaded_once(tmp_path, png_bytes):
    url = "https://example.com/a.png"
    server = FakeServer({url: (200, png_bytes, {})})
    fetcher = make_fetcher(tmp_path, server)

    results = fetcher.fetch([url, url, url])

    assert list(results) == [url]
    assert results[url].ok
    assert not results[url].skipped
    assert server.count("GET", url) == 1
    assert open(results[url].path, "rb").read() == png_bytes


def test_cached_file_is_only_checked_with_head(tmp_path, png_bytes):
    url = "https://example.com/a.png"
    server = FakeServer({url: (200, png_bytes, {})})
    make_fetcher(tmp_path, server).fetch([url])

    results = make_fetcher(tmp_path, server).fetch([url])

    assert results[url].ok
    assert results[url].skipped
    assert server.count("GET", url) == 1
    assert server.count("HEAD", url) == 1


def test_cached_file_with_other_size_is_downloaded_again(tmp_path, png_bytes):
    url = "https://example.com/a.png"
    server = FakeServer({url: (200, png_bytes, {})})
    fetcher = make_fetcher(tmp_path, server)
    with open(fetcher.local_path_for(url), "wb") as f:
        f.write(b"stale")

    results = fetcher.fetch([url])

    assert results[url].ok
    assert not results[url].skipped
    assert server.count("GET", url) == 1
    assert open(results[url].path, "rb").read() == png_bytes


def test_bad_status_is_a_failed_result(tmp_path):
    url = "https://example.com/gone.png"
    server = FakeServer({url: (500, b"boom", {})})
    fetcher = make_fetcher(tmp_path, server)

    result = fetcher.fetch([url])[url]

    assert not result.ok
    assert "500" in result.error
    assert not os.path.exists(result.path)
    assert not os.path.exists(result.path + ".part")


def test_short_body_is_a_failed_result(tmp_path, png_bytes):
    url = "https://example.com/short.png"
    headers = {"Content-Length": str(len(png_bytes) + 100)}
    server = FakeServer({url: (200, png_bytes, headers)})
    fetcher = make_fetcher(tmp_path, server)

    result = fetcher.fetch([url])[url]

    assert not result.ok
    assert "expected" in result.error
    assert not os.path.exists(result.path)


def test_one_failure_does_not_affect_the_others(tmp_path, png_bytes):
    good = "https://example.com/good.png"
    broken = "https://example.com/broken.png"
    missing = "https://example.com/missing.png"
    server = FakeServer(
        {
            good: (200, png_bytes, {}),
            broken: httpx.ConnectError("connection refused"),
        }
    )
    fetcher = make_fetcher(tmp_path, server, concurrency=2)

    results = fetcher.fetch([broken, good, missing])

    assert set(results) == {good, broken, missing}
    assert results[good].ok
    assert not results[broken].ok
    assert not results[missing].ok
    assert "404" in results[missing].error


def test_expired_deadline_fails_without_request(tmp_path, png_bytes):
    url = "https://example.com/slow.png"
    server = FakeServer({url: (200, png_bytes, {})})
    fetcher = make_fetcher(tmp_path, server, timeout=0)

    result = fetcher.fetch([url])[url]

    assert not result.ok
    assert "timed out" in result.error
    assert server.requests == []


def test_cancelled_fetcher_downloads_nothing(tmp_path, png_bytes):
    url = "https://example.com/a.png"
    server = FakeServer({url: (200, png_bytes, {})})
    fetcher = make_fetcher(tmp_path, server)
    fetcher.cancel()

    result = fetcher.fetch([url])[url]

    assert fetcher.cancelled
    assert result.error == "cancelled"
    assert server.requests == []


def test_concurrency_must_be_positive(tmp_path):
    with pytest.raises(ValueError):
        Fetcher(str(tmp_path), concurrency=0, client=httpx.Client())


def test_in_memory_response_body_counts_as_fully_downloaded(tmp_path, png_bytes):
    url = "https://example.com/a.png"
    client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, content=png_bytes)))
    fetcher = Fetcher(str(tmp_path), client=client)

    result = fetcher.fetch([url])[url]

    assert result.ok, result.error
    assert os.path.getsize(result.path) == len(png_bytes)


def test_url_httpx_refuses_is_a_failed_result(tmp_path, png_bytes):
    bad = "https://example.com/a\n.png"
    good = "https://example.com/b.png"
    server = FakeServer({good: (200, png_bytes, {})})
    fetcher = make_fetcher(tmp_path, server)

    results = fetcher.fetch([bad, good])

    assert not results[bad].ok
    assert results[good].ok


def test_url_httpx_refuses_with_cached_file_is_a_failed_result(tmp_path, png_bytes):
    bad = "https://example.com/a\n.png"
    fetcher = make_fetcher(tmp_path, FakeServer({}))
    with open(fetcher.local_path_for(bad), "wb") as f:
        f.write(png_bytes)

    result = fetcher.fetch([bad])[bad]

    assert not result.ok


def test_downloads_never_exceed_the_concurrency_limit(tmp_path, png_bytes):
    lock = threading.Lock()
    state = {"active": 0, "peak": 0}

    def handler(request):
        with lock:
            state["active"] += 1
            state["peak"] = max(state["peak"], state["active"])
        time.sleep(0.05)
        with lock:
            state["active"] -= 1
        return httpx.Response(200, content=png_bytes)

    urls = [f"https://example.com/{i}.png" for i in range(10)]
    client = httpx.Client(transport=httpx.MockTransport(handler))
    fetcher = Fetcher(str(tmp_path), concurrency=3, client=client)

    results = fetcher.fetch(urls)

    assert all(result.ok for result in results.values())
    assert 1 < state["peak"] <= 3
