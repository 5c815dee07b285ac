"""Fetch novel chapters from supported sites through the shared browser.

Each supported site is a ``SiteProfile`` selected by host name; adding a site
means adding an entry to ``constants.SITE_PROFILES``, not a new branch here.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError

from ..config import BROWSER_TIMEOUT, MULTI_CHAPTER_DELAY
from ..constants import NEXT_CHAPTER_LABEL, PREV_CHAPTER_LABEL, SITE_PROFILES
from ..errors import ChapterFetchError, QuillSyncError
from ..models.chapter import ChapterFetchResult
from .browser import BrowserSession, close_page, goto

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)


@dataclass(frozen=True)
class SiteProfile:
    name: str
    title: str
    content: str
    nav_links: str
    hosts: tuple[str, ...] = field(default_factory=tuple)

    def matches(self, url: str) -> bool:
        host = (urlparse(url).hostname or "").lower()
        return any(host == h or host.endswith(f".{h}") for h in self.hosts)


def load_profiles(table: dict = SITE_PROFILES) -> list[SiteProfile]:
    return [
        SiteProfile(
            name=name,
            title=entry["title"],
            content=entry["content"],
            nav_links=entry["nav_links"],
            hosts=tuple(entry.get("hosts", ())),
        )
        for name, entry in table.items()
    ]


def select_profile(url: str, profiles: list[SiteProfile]) -> SiteProfile:
    """Pick the profile whose hosts match ``url``, else the ``default`` one."""
    for profile in profiles:
        if profile.matches(url):
            return profile
    for profile in profiles:
        if profile.name == "default":
            return profile
    raise ChapterFetchError(f"No site profile available for {url}.")


def _inner_text(node) -> str:
    if node is None:
        return ""
    # Paragraphs and <br> both end a line, as in the rendered page
    lines = (line.strip() for line in node.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


def parse_chapter(html: str, url: str, profile: SiteProfile) -> ChapterFetchResult:
    """Extract title, body and neighbour links from a rendered chapter page."""
    soup = BeautifulSoup(html, "html.parser")

    title_node = soup.select_one(profile.title)
    title = title_node.get_text(strip=True) if title_node else ""
    raw_text = _inner_text(soup.select_one(profile.content))

    prev_link = next_link = ""
    for link in soup.select(profile.nav_links):
        label = link.get_text()
        href = urljoin(url, link.get("href", ""))
        if PREV_CHAPTER_LABEL in label and not prev_link:
            prev_link = href
        elif NEXT_CHAPTER_LABEL in label and not next_link:
            next_link = href

    if not raw_text:
        raise ChapterFetchError("No chapter text found on the page.")
    return ChapterFetchResult(
        title=title, raw_text=raw_text, prev_link=prev_link, next_link=next_link
    )


class ChapterFetcher:
    """Fetches chapters, caching successes by URL until ``clear_cache``."""

    def __init__(self, session: BrowserSession, profiles: Optional[list[SiteProfile]] = None):
        self.session = session
        self.profiles = profiles or load_profiles()
        self._cache: dict[str, ChapterFetchResult] = {}

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    def clear_cache(self):
        self._cache.clear()
        logger.info("Chapter cache cleared")

    async def fetch(self, url: str, request_id: str = "") -> ChapterFetchResult:
        """Fetch one chapter.

        Raises:
            ChapterFetchError: if the page can't be loaded or has no text.
        """
        cached = self._cache.get(url)
        if cached is not None:
            logger.info(f"Fetching cached chapter for {url}")
            return cached

        profile = select_profile(url, self.profiles)
        page = None
        try:
            logger.info(f"Fetching chapter from {url} ({profile.name}) for request {request_id}")
            page = await self.session.new_page(headless=True)
            await goto(page, url, timeout=BROWSER_TIMEOUT)
            html = await page.content()
        except PlaywrightError as e:
            logger.error(f"Error fetching chapter from {url} for request {request_id}: {e}")
            raise ChapterFetchError(f"Fetch failed: {e}. Check the URL and try again.") from e
        except QuillSyncError as e:
            raise ChapterFetchError(e.message) from e
        finally:
            await close_page(page)

        result = parse_chapter(html, url, profile)
        logger.info(f"Chapter fetched: {result.title}, {result.raw_text[:100]}...")
        self._cache[url] = result
        return result

    async def fetch_many(self, url: str, count: int, request_id: str = "") -> ChapterFetchResult:
        """Follow next-chapter links from ``url`` and join up to ``count`` chapters."""
        texts = []
        first: Optional[ChapterFetchResult] = None
        last: Optional[ChapterFetchResult] = None
        current = url

        for i in range(count):
            try:
                chapter = await self.fetch(current, request_id)
            except ChapterFetchError as e:
                raise ChapterFetchError(
                    f"Multi-chapter fetch failed at chapter {i + 1}: {e.message}"
                ) from e
            first = first or chapter
            last = chapter
            texts.append(chapter.raw_text)
            if not chapter.next_link:
                logger.info(f"No next chapter link found after {i + 1} chapters")
                break
            current = chapter.next_link
            if i + 1 < count:
                await asyncio.sleep(MULTI_CHAPTER_DELAY)

        logger.info(f"Fetched {len(texts)} chapters for request {request_id}")
        return ChapterFetchResult(
            title=last.title,
            raw_text="\n\n".join(texts),
            prev_link=first.prev_link,
            next_link=last.next_link,
        )
