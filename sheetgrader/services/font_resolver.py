"""
Font Resolver
=============
Finds a Unicode-capable TrueType font so Turkish (and other non-ASCII)
text renders with real glyphs in generated documents.

Resolution order, first hit wins:
1. NotoSans-Regular.ttf in the local font cache
2. DejaVuSans.ttf in the local font cache
3. Well-known system font locations
4. Download Noto Sans, then DejaVu Sans, into the cache
5. None: the document engine's default font is used

Storage goes through a FontCache so the resolver can be exercised without
touching the real disk or network.
"""
import os
import logging
import tempfile
import threading
import time

import requests

from sheetgrader.config import config, NOTO_FONT_URL, DEJAVU_FONT_URL

logger = logging.getLogger(__name__)

NOTO_FONT_FILE = "NotoSans-Regular.ttf"
DEJAVU_FONT_FILE = "DejaVuSans.ttf"

# (cache file name, download URL), tried in order
REMOTE_FONT_SOURCES = [
    (NOTO_FONT_FILE, NOTO_FONT_URL),
    (DEJAVU_FONT_FILE, DEJAVU_FONT_URL),
]

# Family names Word knows these files by
FONT_FAMILIES = {
    "notosans-regular.ttf": "Noto Sans",
    "dejavusans.ttf": "DejaVu Sans",
    "calibri.ttf": "Calibri",
    "tahoma.ttf": "Tahoma",
    "verdana.ttf": "Verdana",
    "arial.ttf": "Arial",
    "arialuni.ttf": "Arial Unicode MS",
    "arial unicode.ttf": "Arial Unicode MS",
    "segoeui.ttf": "Segoe UI",
}

CHUNK_SIZE = 64 * 1024


class FontFetchError(Exception):
    """A remote font could not be downloaded."""


def system_font_candidates():
    """Ordered list of system font files worth trying."""
    win_dir = os.environ.get("WINDIR", "C:\\Windows")
    windows_fonts = os.path.join(win_dir, "Fonts")
    candidates = [
        os.path.join(windows_fonts, name)
        for name in ("calibri.ttf", "tahoma.ttf", "verdana.ttf",
                     "arial.ttf", "arialuni.ttf", "segoeui.ttf")
    ]
    candidates += [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/TTF/DejaVuSans.ttf",
        "/usr/share/fonts/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/truetype/noto/NotoSans-Regular.ttf",
        "/usr/share/fonts/noto/NotoSans-Regular.ttf",
        "/Library/Fonts/Arial Unicode.ttf",
        "/System/Library/Fonts/Supplemental/Arial Unicode.ttf",
    ]
    return candidates


def font_family_for(path):
    """Return the font family name for a resolved font file, or None."""
    if not path:
        return None
    filename = os.path.basename(path)
    family = FONT_FAMILIES.get(filename.lower())
    if family:
        return family
    return os.path.splitext(filename)[0]


class FontCache:
    """Capability for checking and writing named font files."""

    def path_for(self, name):
        raise NotImplementedError

    def exists(self, name):
        raise NotImplementedError

    def write(self, name, chunks):
        """Store ``chunks`` under ``name`` and return its path.

        Nothing is left behind under ``name`` if writing fails.
        """
        raise NotImplementedError

    def remove(self, name):
        """Delete ``name``; a missing entry is not an error."""
        raise NotImplementedError


class LocalFontCache(FontCache):
    """Font cache backed by a directory on disk."""

    def __init__(self, directory):
        self.directory = str(directory)

    def _ensure_directory(self):
        try:
            os.makedirs(self.directory, exist_ok=True)
            return True
        except OSError as e:
            logger.warning("Could not create font cache directory %s: %s", self.directory, e)
            return False

    def path_for(self, name):
        return os.path.join(self.directory, name)

    def exists(self, name):
        try:
            return os.path.isfile(self.path_for(name))
        except OSError:
            return False

    def write(self, name, chunks):
        if not self._ensure_directory():
            raise OSError(f"font cache directory unavailable: {self.directory}")

        final_path = self.path_for(name)
        fd, tmp_path = tempfile.mkstemp(prefix=name + ".", suffix=".part", dir=self.directory)
        try:
            with os.fdopen(fd, "wb") as f:
                for chunk in chunks:
                    if chunk:
                        f.write(chunk)
            # Atomic on the same filesystem; concurrent writers: last one wins
            os.replace(tmp_path, final_path)
        except BaseException:
            self._discard(tmp_path)
            raise
        return final_path

    def remove(self, name):
        self._discard(self.path_for(name))

    @staticmethod
    def _discard(path):
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning("Could not remove font file %s: %s", path, e)


class StreamedDownload:
    """Byte chunks of an open HTTP response.

    The response is released when iteration ends or close() is called,
    whichever comes first.
    """

    def __init__(self, url, response):
        self.url = url
        self.response = response

    def __iter__(self):
        try:
            for chunk in self.response.iter_content(chunk_size=CHUNK_SIZE):
                yield chunk
        except requests.RequestException as e:
            raise FontFetchError(f"{self.url}: {e}") from e
        finally:
            self.close()

    def close(self):
        self.response.close()


def http_fetch(url, timeout=None):
    """Stream ``url`` as byte chunks. Raises FontFetchError on any failure.

    Without an explicit ``timeout`` the current ``config.font_download_timeout``
    is used.
    """
    if timeout is None:
        timeout = config.font_download_timeout
    try:
        response = requests.get(url, stream=True, timeout=timeout)
    except requests.RequestException as e:
        raise FontFetchError(f"{url}: {e}") from e

    if response.status_code != 200:
        response.close()
        raise FontFetchError(f"{url}: HTTP {response.status_code}")

    return StreamedDownload(url, response)


def _close(chunks):
    close = getattr(chunks, "close", None)
    if close is not None:
        close()


def first_success(strategies):
    """Run zero-argument strategies in order; return the first non-None result."""
    for strategy in strategies:
        result = strategy()
        if result is not None:
            return result
    return None


class FontResolver:
    """Resolves and memoizes the path of a Unicode-capable font.

    A found font is kept for the life of the resolver. A failed lookup is
    remembered for ``retry_interval`` seconds (``config.font_retry_interval``
    when not given) so requests arriving meanwhile do not repeat the
    downloads.
    """

    def __init__(self, cache, fetch=http_fetch, system_candidates=None,
                 remote_sources=None, path_exists=os.path.isfile,
                 retry_interval=None, clock=time.monotonic):
        self.cache = cache
        self.fetch = fetch
        self.system_candidates = (
            list(system_candidates) if system_candidates is not None
            else system_font_candidates()
        )
        self.remote_sources = list(remote_sources or REMOTE_FONT_SOURCES)
        self.path_exists = path_exists
        self.retry_interval = retry_interval
        self.clock = clock
        self._resolved = None
        self._failed_at = None
        self._lock = threading.Lock()

    def _cached(self, name):
        def strategy():
            if self.cache.exists(name):
                return self.cache.path_for(name)
            return None
        return strategy

    def _system_font(self):
        for candidate in self.system_candidates:
            try:
                if self.path_exists(candidate):
                    return candidate
            except OSError:
                continue
        return None

    def _download(self, name, url):
        def strategy():
            # Another request may have finished the same download meanwhile
            if self.cache.exists(name):
                return self.cache.path_for(name)

            received = 0

            def counted(chunks):
                nonlocal received
                for chunk in chunks:
                    received += len(chunk)
                    yield chunk

            chunks = None
            try:
                chunks = self.fetch(url)
                path = self.cache.write(name, counted(chunks))
            except (FontFetchError, OSError) as e:
                logger.warning("Font download failed (%s): %s", name, e)
                return None
            finally:
                if chunks is not None:
                    _close(chunks)

            if received == 0:
                logger.warning("Font download for %s was empty; discarding it", name)
                self.cache.remove(name)
                return None
            return path
        return strategy

    def strategies(self):
        """Ordered resolution strategies."""
        chain = [self._cached(NOTO_FONT_FILE), self._cached(DEJAVU_FONT_FILE), self._system_font]
        chain += [self._download(name, url) for name, url in self.remote_sources]
        return chain

    def _retry_interval(self):
        if self.retry_interval is not None:
            return self.retry_interval
        return config.font_retry_interval

    def _recently_failed(self):
        return (
            self._failed_at is not None
            and self.clock() - self._failed_at < self._retry_interval()
        )

    def resolve(self):
        """Return a font path or None."""
        if self._resolved is not None:
            return self._resolved
        with self._lock:
            if self._resolved is not None:
                return self._resolved
            if self._recently_failed():
                return None

            path = first_success(self.strategies())
            if path is None:
                logger.warning("No Unicode font available; using the default document font")
                self._failed_at = self.clock()
            else:
                logger.info("Using Unicode font %s", path)
                self._resolved = path
                self._failed_at = None
            return path


_default_resolver = None
_default_lock = threading.Lock()


def get_default_resolver():
    """Resolver over ``config.fonts_dir``; rebuilt when that setting changes."""
    global _default_resolver
    directory = str(config.fonts_dir)
    with _default_lock:
        if _default_resolver is None or _default_resolver.cache.directory != directory:
            _default_resolver = FontResolver(LocalFontCache(directory))
        return _default_resolver


def resolve_unicode_font():
    """Process-wide font resolution over the configured font directory."""
    return get_default_resolver().resolve()
