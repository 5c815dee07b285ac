"""Tests for chapter fetching, parsing and caching."""

import pytest

from quillsync.errors import ChapterFetchError
from quillsync.session_manager.chapters import (
    ChapterFetcher,
    load_profiles,
    parse_chapter,
    select_profile,
)

YUEDU_URL = "https://www.69yuedu.net/r/123/456.html"
YUEDU_HTML = """
<html><body>
  <h1 class="hide720">第1章 少年</h1>
  <div class="content">第一段<br>第二段<br><br>第三段</div>
  <div class="page1">
    <a href="/r/123/455.html">上一章</a>
    <a href="/r/123/">目录</a>
    <a href="/r/123/457.html">下一章</a>
  </div>
</body></html>
"""

DEFAULT_URL = "https://www.example-novels.com/tongren/88/1.html"
DEFAULT_HTML = """
<html><body>
  <div class="read_chapterName"><h1>第一章 开端</h1></div>
  <div class="read_chapterDetail"><p>内容一</p><p>内容二</p></div>
  <div class="pageNav">
    <a href="/tongren/88/0.html">上一章</a>
    <a href="/tongren/88/2.html">下一章</a>
  </div>
</body></html>
"""


def chapter_html(title, body, next_href=""):
    next_link = f'<a href="{next_href}">下一章</a>' if next_href else ""
    return f"""
    <div class="read_chapterName"><h1>{title}</h1></div>
    <div class="read_chapterDetail">{body}</div>
    <div class="pageNav"><a href="/tongren/88/0.html">上一章</a>{next_link}</div>
    """


class TestSiteProfiles:
    def test_known_host_selects_its_profile(self):
        assert select_profile(YUEDU_URL, load_profiles()).name == "69yuedu"

    def test_unknown_host_falls_back_to_default(self):
        assert select_profile(DEFAULT_URL, load_profiles()).name == "default"


class TestParseChapter:
    def test_parses_69yuedu_layout(self):
        profile = select_profile(YUEDU_URL, load_profiles())

        result = parse_chapter(YUEDU_HTML, YUEDU_URL, profile)

        assert result.title == "第1章 少年"
        assert result.raw_text == "第一段\n第二段\n第三段"
        assert result.prev_link == "https://www.69yuedu.net/r/123/455.html"
        assert result.next_link == "https://www.69yuedu.net/r/123/457.html"

    def test_parses_default_layout(self):
        profile = select_profile(DEFAULT_URL, load_profiles())

        result = parse_chapter(DEFAULT_HTML, DEFAULT_URL, profile)

        assert result.title == "第一章 开端"
        assert result.raw_text == "内容一\n内容二"
        assert result.prev_link == "https://www.example-novels.com/tongren/88/0.html"
        assert result.next_link == "https://www.example-novels.com/tongren/88/2.html"

    def test_missing_text_is_an_error(self):
        profile = select_profile(DEFAULT_URL, load_profiles())

        with pytest.raises(ChapterFetchError):
            parse_chapter("<html><body>Not found</body></html>", DEFAULT_URL, profile)

    def test_serializes_with_client_field_names(self):
        profile = select_profile(DEFAULT_URL, load_profiles())

        data = parse_chapter(DEFAULT_HTML, DEFAULT_URL, profile).model_dump(by_alias=True)

        assert set(data) == {"chapterName", "rawText", "prevLink", "nextLink"}


class TestChapterFetcher:
    @pytest.mark.asyncio
    async def test_cached_chapter_is_returned_without_navigation(self, chat, session):
        # Given
        chat.html_by_url[DEFAULT_URL] = DEFAULT_HTML
        fetcher = ChapterFetcher(session)

        # When: The same URL is fetched twice
        first = await fetcher.fetch(DEFAULT_URL)
        second = await fetcher.fetch(DEFAULT_URL)

        # Then: One navigation, identical result
        assert second is first
        assert chat.visited.count(DEFAULT_URL) == 1
        assert fetcher.cache_size == 1

    @pytest.mark.asyncio
    async def test_clear_cache_forces_refetch(self, chat, session):
        chat.html_by_url[DEFAULT_URL] = DEFAULT_HTML
        fetcher = ChapterFetcher(session)
        await fetcher.fetch(DEFAULT_URL)

        fetcher.clear_cache()
        await fetcher.fetch(DEFAULT_URL)

        assert fetcher.cache_size == 1
        assert chat.visited.count(DEFAULT_URL) == 2

    @pytest.mark.asyncio
    async def test_failed_fetch_is_not_cached(self, chat, session):
        fetcher = ChapterFetcher(session)

        with pytest.raises(ChapterFetchError):
            await fetcher.fetch(DEFAULT_URL)
        assert fetcher.cache_size == 0

    @pytest.mark.asyncio
    async def test_fetch_closes_its_page(self, chat, session, launcher):
        chat.html_by_url[DEFAULT_URL] = DEFAULT_HTML

        await ChapterFetcher(session).fetch(DEFAULT_URL)

        assert all(page.closed for page in launcher.last_context.pages)

    @pytest.mark.asyncio
    async def test_fetch_many_follows_next_links(self, chat, session, monkeypatch):
        # Given: Three linked chapters
        monkeypatch.setattr("quillsync.session_manager.chapters.MULTI_CHAPTER_DELAY", 0)
        base = "https://www.example-novels.com/tongren/88/"
        chat.html_by_url[base + "1.html"] = chapter_html("第一章", "一", "/tongren/88/2.html")
        chat.html_by_url[base + "2.html"] = chapter_html("第二章", "二", "/tongren/88/3.html")
        chat.html_by_url[base + "3.html"] = chapter_html("第三章", "三", "/tongren/88/4.html")

        # When: Two chapters are requested
        result = await ChapterFetcher(session).fetch_many(base + "1.html", 2)

        # Then: Texts joined, outer links kept, last title used
        assert result.raw_text == "一\n\n二"
        assert result.title == "第二章"
        assert result.prev_link == base + "0.html"
        assert result.next_link == base + "3.html"

    @pytest.mark.asyncio
    async def test_fetch_many_stops_at_last_chapter(self, chat, session, monkeypatch):
        monkeypatch.setattr("quillsync.session_manager.chapters.MULTI_CHAPTER_DELAY", 0)
        base = "https://www.example-novels.com/tongren/88/"
        chat.html_by_url[base + "1.html"] = chapter_html("第一章", "一", "/tongren/88/2.html")
        chat.html_by_url[base + "2.html"] = chapter_html("第二章", "二")

        result = await ChapterFetcher(session).fetch_many(base + "1.html", 5)

        assert result.raw_text == "一\n\n二"
        assert result.next_link == ""
