"""
Test: Unicode font resolution, caching and download fallback.
No network: fetches go through a counting fake.
"""
import os
import pytest
import requests

from sheetgrader.services import font_resolver as fr
from sheetgrader.services.font_resolver import (
    FontResolver, LocalFontCache, FontFetchError, first_success, font_family_for,
    NOTO_FONT_FILE, DEJAVU_FONT_FILE, REMOTE_FONT_SOURCES,
)
from sheetgrader.config import config
from fakes import MemoryFontCache, CountingFetcher

NOTO_URL = REMOTE_FONT_SOURCES[0][1]
DEJAVU_URL = REMOTE_FONT_SOURCES[1][1]


def _resolver(cache, fetch, system=(), exists=lambda p: False, retry_interval=0, clock=None):
    kwargs = {"clock": clock} if clock is not None else {}
    return FontResolver(cache, fetch=fetch, system_candidates=list(system), path_exists=exists,
                        retry_interval=retry_interval, **kwargs)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestResolutionOrder:
    def test_cached_noto_first(self, counting_fetcher):
        cache = MemoryFontCache({NOTO_FONT_FILE: b"n", DEJAVU_FONT_FILE: b"d"})
        assert _resolver(cache, counting_fetcher).resolve() == "/cache/" + NOTO_FONT_FILE
        assert counting_fetcher.calls == []

    def test_cached_dejavu_second(self, counting_fetcher):
        cache = MemoryFontCache({DEJAVU_FONT_FILE: b"d"})
        assert _resolver(cache, counting_fetcher).resolve() == "/cache/" + DEJAVU_FONT_FILE
        assert counting_fetcher.calls == []

    def test_system_font_before_download(self, memory_cache, counting_fetcher):
        system = ["/win/calibri.ttf", "/win/arial.ttf"]
        resolver = _resolver(memory_cache, counting_fetcher, system, exists=lambda p: p == "/win/arial.ttf")
        assert resolver.resolve() == "/win/arial.ttf"
        assert counting_fetcher.calls == []

    def test_downloads_noto(self, memory_cache):
        fetcher = CountingFetcher({NOTO_URL: b"noto-bytes"})
        assert _resolver(memory_cache, fetcher).resolve() == "/cache/" + NOTO_FONT_FILE
        assert memory_cache.files[NOTO_FONT_FILE] == b"noto-bytes"
        assert fetcher.calls == [NOTO_URL]

    def test_falls_back_to_dejavu_download(self, memory_cache):
        fetcher = CountingFetcher({DEJAVU_URL: b"dejavu-bytes"})
        assert _resolver(memory_cache, fetcher).resolve() == "/cache/" + DEJAVU_FONT_FILE
        assert fetcher.calls == [NOTO_URL, DEJAVU_URL]
        assert NOTO_FONT_FILE not in memory_cache.files

    def test_all_sources_fail(self, memory_cache, counting_fetcher):
        assert _resolver(memory_cache, counting_fetcher).resolve() is None
        assert counting_fetcher.calls == [NOTO_URL, DEJAVU_URL]


class TestMemoization:
    def test_second_call_does_not_fetch(self, memory_cache):
        fetcher = CountingFetcher({NOTO_URL: b"noto"})
        resolver = _resolver(memory_cache, fetcher)
        first = resolver.resolve()
        fetcher.calls.clear()
        assert resolver.resolve() == first
        assert fetcher.calls == []
        assert memory_cache.writes == [NOTO_FONT_FILE]

    def test_failure_is_retried(self, memory_cache):
        fetcher = CountingFetcher()
        resolver = _resolver(memory_cache, fetcher)
        assert resolver.resolve() is None
        fetcher.responses[NOTO_URL] = b"noto"
        assert resolver.resolve() == "/cache/" + NOTO_FONT_FILE

    def test_failure_remembered_for_retry_interval(self, memory_cache):
        clock = FakeClock()
        fetcher = CountingFetcher()
        resolver = _resolver(memory_cache, fetcher, retry_interval=60, clock=clock)
        assert resolver.resolve() is None

        fetcher.responses[NOTO_URL] = b"noto"
        clock.now += 30
        assert resolver.resolve() is None
        assert fetcher.calls == [NOTO_URL, DEJAVU_URL]

        clock.now += 31
        assert resolver.resolve() == "/cache/" + NOTO_FONT_FILE

    def test_retry_interval_read_from_config(self, memory_cache, monkeypatch):
        monkeypatch.setattr(config, "font_retry_interval", 0)
        fetcher = CountingFetcher()
        resolver = FontResolver(memory_cache, fetch=fetcher, system_candidates=[],
                                path_exists=lambda p: False)
        assert resolver.resolve() is None
        assert resolver.resolve() is None
        assert fetcher.calls == [NOTO_URL, DEJAVU_URL] * 2


class TestDownloadCleanup:
    def test_empty_download_is_discarded(self, memory_cache):
        fetcher = CountingFetcher({NOTO_URL: b"", DEJAVU_URL: b"dejavu"})
        assert _resolver(memory_cache, fetcher).resolve() == "/cache/" + DEJAVU_FONT_FILE
        assert memory_cache.removals == [NOTO_FONT_FILE]
        assert NOTO_FONT_FILE not in memory_cache.files

    def test_streams_closed_after_download(self, memory_cache):
        fetcher = CountingFetcher({NOTO_URL: b"noto"})
        _resolver(memory_cache, fetcher).resolve()
        assert [s.closed for s in fetcher.streams] == [True]

    def test_stream_closed_when_cache_unwritable(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_bytes(b"")
        fetcher = CountingFetcher({NOTO_URL: b"noto", DEJAVU_URL: b"dejavu"})
        resolver = _resolver(LocalFontCache(blocker / "fonts"), fetcher)
        assert resolver.resolve() is None
        assert [s.closed for s in fetcher.streams] == [True, True]


class TestLocalFontCache:
    def test_write_and_exists(self, tmp_path):
        cache = LocalFontCache(tmp_path / "fonts")
        path = cache.write(NOTO_FONT_FILE, iter([b"ab", b"", b"cd"]))
        assert cache.exists(NOTO_FONT_FILE)
        with open(path, "rb") as f:
            assert f.read() == b"abcd"

    def test_directory_created_on_demand(self, tmp_path):
        directory = tmp_path / "a" / "b"
        LocalFontCache(directory).write(DEJAVU_FONT_FILE, iter([b"x"]))
        assert directory.is_dir()

    def test_failed_write_leaves_nothing(self, tmp_path):
        cache = LocalFontCache(tmp_path)

        def broken_stream():
            yield b"partial"
            raise FontFetchError("connection reset")

        with pytest.raises(FontFetchError):
            cache.write(NOTO_FONT_FILE, broken_stream())
        assert not cache.exists(NOTO_FONT_FILE)
        assert os.listdir(tmp_path) == []

    def test_existing_file_counts_as_cached(self, tmp_path):
        (tmp_path / DEJAVU_FONT_FILE).write_bytes(b"d")
        resolver = _resolver(LocalFontCache(tmp_path), CountingFetcher())
        assert resolver.resolve() == str(tmp_path / DEJAVU_FONT_FILE)

    def test_unusable_directory_is_not_fatal(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_bytes(b"")
        fetcher = CountingFetcher({NOTO_URL: b"noto"})
        resolver = _resolver(LocalFontCache(blocker / "fonts"), fetcher)
        assert resolver.resolve() is None

    def test_end_to_end_download_failure_cleans_up(self, tmp_path):
        def fetch(url):
            yield b"half a font"
            raise FontFetchError("HTTP 500")

        resolver = _resolver(LocalFontCache(tmp_path), fetch)
        assert resolver.resolve() is None
        assert os.listdir(tmp_path) == []

    def test_remove(self, tmp_path):
        cache = LocalFontCache(tmp_path)
        cache.write(NOTO_FONT_FILE, iter([b"n"]))
        cache.remove(NOTO_FONT_FILE)
        assert not cache.exists(NOTO_FONT_FILE)
        assert os.listdir(tmp_path) == []

    def test_remove_missing_is_noop(self, tmp_path):
        cache = LocalFontCache(tmp_path / "absent")
        cache.remove(NOTO_FONT_FILE)
        assert not cache.exists(NOTO_FONT_FILE)


class FakeResponse:
    def __init__(self, status_code, chunks=()):
        self.status_code = status_code
        self.chunks = list(chunks)
        self.closed = False

    def iter_content(self, chunk_size=None):
        return iter(self.chunks)

    def close(self):
        self.closed = True


class TestHttpFetch:
    def test_success_streams_chunks(self, monkeypatch):
        response = FakeResponse(200, [b"a", b"b"])
        monkeypatch.setattr(fr.requests, "get", lambda url, stream, timeout: response)
        assert b"".join(fr.http_fetch("https://example.test/font.ttf")) == b"ab"
        assert response.closed

    def test_non_200_raises(self, monkeypatch):
        response = FakeResponse(404)
        monkeypatch.setattr(fr.requests, "get", lambda url, stream, timeout: response)
        with pytest.raises(FontFetchError):
            fr.http_fetch("https://example.test/font.ttf")
        assert response.closed

    def test_transport_error_raises(self, monkeypatch):
        def boom(url, stream, timeout):
            raise requests.ConnectionError("offline")
        monkeypatch.setattr(fr.requests, "get", boom)
        with pytest.raises(FontFetchError):
            fr.http_fetch("https://example.test/font.ttf")

    def test_close_without_iterating_releases_response(self, monkeypatch):
        response = FakeResponse(200, [b"a"])
        monkeypatch.setattr(fr.requests, "get", lambda url, stream, timeout: response)
        fr.http_fetch("https://example.test/font.ttf").close()
        assert response.closed

    def test_response_closed_when_cache_unwritable(self, monkeypatch, tmp_path):
        responses = []

        def fake_get(url, stream, timeout):
            responses.append(FakeResponse(200, [b"font"]))
            return responses[-1]

        monkeypatch.setattr(fr.requests, "get", fake_get)
        blocker = tmp_path / "file"
        blocker.write_bytes(b"")
        resolver = _resolver(LocalFontCache(blocker / "fonts"), fr.http_fetch)
        assert resolver.resolve() is None
        assert len(responses) == 2
        assert all(r.closed for r in responses)

    def test_timeout_read_from_config(self, monkeypatch):
        timeouts = []

        def fake_get(url, stream, timeout):
            timeouts.append(timeout)
            return FakeResponse(200)

        monkeypatch.setattr(fr.requests, "get", fake_get)
        monkeypatch.setattr(config, "font_download_timeout", 7)
        fr.http_fetch("https://example.test/font.ttf")
        fr.http_fetch("https://example.test/font.ttf", timeout=2)
        assert timeouts == [7, 2]


class TestDefaultResolver:
    @pytest.fixture
    def settings(self, monkeypatch):
        """Global config whose font settings are restored after the test."""
        for key in ("fonts_dir", "font_download_timeout"):
            monkeypatch.setattr(config, key, getattr(config, key))
        monkeypatch.setattr(fr, "_default_resolver", None)
        monkeypatch.setattr(fr, "system_font_candidates", lambda: [])
        return config

    def test_uses_configured_directory_and_timeout(self, settings, monkeypatch, tmp_path):
        timeouts = []

        def fake_get(url, stream, timeout):
            timeouts.append(timeout)
            return FakeResponse(200, [b"font"])

        monkeypatch.setattr(fr.requests, "get", fake_get)
        settings.update({"fonts_dir": str(tmp_path / "myfonts"), "font_download_timeout": 5})

        assert fr.resolve_unicode_font() == str(tmp_path / "myfonts" / NOTO_FONT_FILE)
        assert (tmp_path / "myfonts" / NOTO_FONT_FILE).read_bytes() == b"font"
        assert timeouts == [5]

    def test_rebuilt_when_directory_changes(self, settings, tmp_path):
        settings.update({"fonts_dir": str(tmp_path / "a")})
        first = fr.get_default_resolver()
        assert fr.get_default_resolver() is first

        settings.update({"fonts_dir": str(tmp_path / "b")})
        second = fr.get_default_resolver()
        assert second is not first
        assert second.cache.directory == str(tmp_path / "b")


class TestHelpers:
    def test_first_success(self):
        calls = []

        def make(value):
            def strategy():
                calls.append(value)
                return value
            return strategy

        assert first_success([make(None), make("b"), make("c")]) == "b"
        assert calls == [None, "b"]

    def test_first_success_empty(self):
        assert first_success([]) is None

    @pytest.mark.parametrize("path,family", [
        ("/x/NotoSans-Regular.ttf", "Noto Sans"),
        ("/x/DejaVuSans.ttf", "DejaVu Sans"),
        ("C:\\Windows\\Fonts\\arial.ttf".replace("\\", "/"), "Arial"),
        ("/x/Custom.ttf", "Custom"),
        (None, None),
    ])
    def test_font_family_for(self, path, family):
        assert font_family_for(path) == family

    def test_system_candidates_use_windir(self, monkeypatch):
        monkeypatch.setenv("WINDIR", "/winroot")
        assert fr.system_font_candidates()[0] == os.path.join("/winroot", "Fonts", "calibri.ttf")
