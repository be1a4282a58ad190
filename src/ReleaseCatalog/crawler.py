# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog.crawler",
#   "purpose": "Discover releases by crawling HTML directory listings with a single-writer pipeline",
#   "sections": [
#     {"id": "links", "name": "Link extraction & classification", "anchor": "LNK", "kind": "helpers"},
#     {"id": "stats", "name": "CrawlStats", "anchor": "STATS", "kind": "api"},
#     {"id": "crawler", "name": "LinkCrawler", "anchor": "CRAWL", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Directory-listing ingestion.

:class:`LinkCrawler` walks the HTML listings below a root URL.  Links ending
in ``/`` are followed as sub-directories; links to archives named
``<product>_<version>_<os>_<arch>.<ext>`` become :class:`Release` events.

Page fetches run on a thread pool.  Workers never touch the catalog: they put
events on a bounded queue that exactly one consumer thread drains, and that
consumer is the only writer.  The coordinating thread owns the visited set and
the set of outstanding fetches; once both are exhausted it enqueues a
sentinel, waits for the consumer to drain, and returns the frozen catalog.
"""

from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Set
from urllib.parse import urldefrag, urljoin, urlsplit

import httpx
from bs4 import BeautifulSoup

from .cancellation import CancellationToken
from .catalog import Catalog, Release
from .errors import ConfigError, IngestionError, NameParseError, NetworkError, VersionParseError
from .naming import is_archive_name, parse_artifact_name
from .net import get_bytes
from .settings import CatalogSettings, get_default_settings
from .versions import SemanticVersion

__all__ = ["CrawlStats", "LinkCrawler", "PageResult", "extract_links", "release_from_url"]

LOGGER = logging.getLogger("ReleaseCatalog.crawler")

_SENTINEL = object()
_PUT_POLL_SEC = 0.1

# --- Link extraction & classification ------------------------------------------


def extract_links(html: bytes | str, base_url: str) -> Iterator[str]:
    """Yield absolute, fragment-free targets of every ``<a href>`` in ``html``."""

    soup = BeautifulSoup(html, "html.parser")
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(("mailto:", "javascript:")):
            continue
        try:
            absolute, _fragment = urldefrag(urljoin(base_url, href))
            urlsplit(absolute)
        except ValueError:
            LOGGER.debug("skipping malformed link", extra={"stage": "crawl", "url": base_url, "href": href})
            continue
        yield absolute


def release_from_url(url: str) -> Release:
    """Build a discovery event from an artifact URL.

    Raises:
        NameParseError: If the filename does not follow the artifact convention.
        VersionParseError: If the version field is not a semantic version.
    """

    name = parse_artifact_name(url)
    return Release(
        product=name.product,
        version=SemanticVersion.parse(name.version),
        os=name.os,
        arch=name.arch,
        filename=name.filename,
        url=url,
    )


@dataclass(slots=True)
class PageResult:
    """Outcome of one listing page fetch."""

    url: str
    directories: List[str] = field(default_factory=list)
    releases: int = 0
    dropped: int = 0
    ok: bool = True


# --- CrawlStats ------------------------------------------------------------------


@dataclass(slots=True)
class CrawlStats:
    pages_scheduled: int = 0
    pages_failed: int = 0
    releases_discovered: int = 0
    links_dropped: int = 0
    truncated: bool = False


# --- LinkCrawler -----------------------------------------------------------------


class LinkCrawler:
    """Build a catalog by crawling HTML directory listings.

    Args:
        client: HTTP client shared by all page-fetch workers.
        settings: Parallelism, queue capacity, host allow-list, and page ceiling.
        root_url: Listing to start from; defaults to ``settings.base_url``.
        cancel_token: Token observed by the coordinator, workers, and consumer.

    Raises:
        ConfigError: When the root URL's host is not allow-listed.
    """

    def __init__(
        self,
        client: httpx.Client,
        settings: Optional[CatalogSettings] = None,
        *,
        root_url: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> None:
        self._client = client
        self._settings = settings or get_default_settings()
        self._root_url = (root_url or self._settings.base_url).rstrip("/") + "/"
        root = urlsplit(self._root_url)
        self._root_prefix = root.path
        self._allowed_hosts = frozenset(self._settings.allowed_hosts)
        if (root.hostname or "").lower() not in self._allowed_hosts:
            raise ConfigError(f"crawl root {self._root_url} is not on an allowed host {sorted(self._allowed_hosts)}")
        self._token = cancel_token or CancellationToken()
        self._abort = threading.Event()
        self.stats = CrawlStats()

    @property
    def root_url(self) -> str:
        return self._root_url

    def _allowed(self, url: str) -> bool:
        parts = urlsplit(url)
        return parts.scheme in {"http", "https"} and (parts.hostname or "").lower() in self._allowed_hosts

    def _in_scope(self, url: str) -> bool:
        return self._allowed(url) and urlsplit(url).path.startswith(self._root_prefix)

    def _stopping(self) -> bool:
        return self._abort.is_set() or self._token.is_cancelled()

    # -- producer side ----------------------------------------------------------

    def _emit(self, events: "queue.Queue[object]", release: Release) -> bool:
        while True:
            if self._stopping():
                return False
            try:
                events.put(release, timeout=_PUT_POLL_SEC)
                return True
            except queue.Full:
                continue

    def _fetch_page(self, url: str, events: "queue.Queue[object]") -> PageResult:
        result = PageResult(url=url)
        if self._stopping():
            return result
        try:
            body = get_bytes(self._client, url, settings=self._settings)
        except NetworkError as exc:
            LOGGER.warning(
                "skipping listing page",
                extra={"stage": "crawl", "url": url, "status": exc.status_code, "error": str(exc)},
            )
            result.ok = False
            return result

        try:
            self._scan_links(body, url, events, result)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "failed to process listing page",
                extra={"stage": "crawl", "url": url, "error": str(exc)},
            )
            result.directories.clear()
            result.ok = False
        return result

    def _scan_links(self, body: bytes, url: str, events: "queue.Queue[object]", result: PageResult) -> None:
        for link in extract_links(body, url):
            path = urlsplit(link).path
            if path.endswith("/"):
                if self._in_scope(link):
                    result.directories.append(link)
                continue
            if not is_archive_name(path) or not self._allowed(link):
                continue
            try:
                release = release_from_url(link)
            except (NameParseError, VersionParseError) as exc:
                result.dropped += 1
                LOGGER.debug("dropping unparsable artifact link", extra={"stage": "crawl", "url": link, "error": str(exc)})
                continue
            if not self._emit(events, release):
                break
            result.releases += 1

    # -- consumer side ------------------------------------------------------------

    def _consume(self, catalog: Catalog, events: "queue.Queue[object]", failures: List[BaseException]) -> None:
        while True:
            item = events.get()
            try:
                if item is _SENTINEL:
                    return
                if failures or self._token.is_cancelled():
                    continue
                try:
                    catalog.insert(item)  # type: ignore[arg-type]
                except Exception as exc:  # noqa: BLE001
                    failures.append(exc)
                    self._abort.set()
                    LOGGER.error("catalog insert failed; aborting crawl", extra={"stage": "crawl", "error": str(exc)})
            finally:
                events.task_done()

    # -- coordinator ----------------------------------------------------------------

    def crawl(self) -> Catalog:
        """Crawl from the root URL and return the frozen catalog.

        Raises:
            CrawlCancelledError: When the cancellation token fired.
            IngestionError: When the consumer failed to record a release.
        """

        settings = self._settings
        catalog = Catalog()
        events: "queue.Queue[object]" = queue.Queue(maxsize=settings.queue_size)
        failures: List[BaseException] = []
        self.stats = CrawlStats()
        self._abort.clear()

        consumer = threading.Thread(
            target=self._consume,
            args=(catalog, events, failures),
            name="release-catalog-consumer",
            daemon=True,
        )
        consumer.start()
        LOGGER.info(
            "crawl started",
            extra={"stage": "crawl", "root_url": self._root_url, "parallelism": settings.crawl_parallelism},
        )

        visited: Set[str] = {self._root_url}
        try:
            with ThreadPoolExecutor(
                max_workers=settings.crawl_parallelism,
                thread_name_prefix="release-catalog-crawl",
            ) as pool:
                pending: Set[Future[PageResult]] = {pool.submit(self._fetch_page, self._root_url, events)}
                self.stats.pages_scheduled = 1
                while pending:
                    done, pending = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        result = future.result()
                        self._record(result)
                        for link in result.directories:
                            if self._stopping():
                                break
                            if link in visited:
                                continue
                            if settings.max_pages is not None and self.stats.pages_scheduled >= settings.max_pages:
                                if not self.stats.truncated:
                                    LOGGER.warning(
                                        "page ceiling reached; not scheduling further listings",
                                        extra={"stage": "crawl", "max_pages": settings.max_pages},
                                    )
                                self.stats.truncated = True
                                break
                            visited.add(link)
                            self.stats.pages_scheduled += 1
                            pending.add(pool.submit(self._fetch_page, link, events))
        finally:
            events.put(_SENTINEL)
            consumer.join()

        if failures:
            raise IngestionError(f"crawl aborted: {failures[0]}") from failures[0]
        self._token.raise_if_cancelled()

        LOGGER.info(
            "crawl finished",
            extra={
                "stage": "crawl",
                "products": len(catalog),
                "pages": self.stats.pages_scheduled,
                "failed_pages": self.stats.pages_failed,
                "releases": self.stats.releases_discovered,
            },
        )
        return catalog.freeze()

    def _record(self, result: PageResult) -> None:
        if not result.ok:
            self.stats.pages_failed += 1
        self.stats.releases_discovered += result.releases
        self.stats.links_dropped += result.dropped
