"""Chat surface projects: listing and reading or updating their instructions."""

from __future__ import annotations

import asyncio
import logging
import sys

from playwright.async_api import Page
from playwright.async_api import Error as PlaywrightError

from ..config import BROWSER_TIMEOUT
from ..constants import CHAT_SURFACE_ORIGIN, INSTRUCTIONS_TILE_LABEL, SELECTORS
from ..models.session import ChatProject
from .browser import goto

logger = logging.getLogger(__name__)
if not logger.handlers:
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)

DIALOG_TIMEOUT = 30000
SAVE_ENABLE_DELAY = 3
SAVE_SETTLE_DELAY = 2

_LIST_PROJECTS_JS = """(sel) => {
    const list = document.querySelector(sel.list);
    if (!list) {
        return Array.from(document.querySelectorAll('a[href]'))
            .filter(a => a.href.includes('/project') && (a.title || a.querySelector('.grow')))
            .map(a => ({
                name: a.title || (a.querySelector('.grow')?.innerText.trim() ?? ''),
                href: a.href.replace(window.location.origin, ''),
            }));
    }
    return Array.from(list.querySelectorAll(sel.link)).map(a => ({
        name: a.getAttribute('title') || (a.querySelector('.grow')?.innerText.trim() ?? ''),
        href: a.getAttribute('href') || '',
    }));
}"""

_SET_TEXTAREA_JS = """([selector, value]) => {
    const ta = document.querySelector(selector);
    if (!ta) return false;
    ta.value = value;
    ta.dispatchEvent(new Event('input', { bubbles: true }));
    ta.dispatchEvent(new Event('change', { bubbles: true }));
    return true;
}"""


async def _open_instructions_dialog(page: Page, project_href: str):
    await goto(page, f"{CHAT_SURFACE_ORIGIN}{project_href}", timeout=BROWSER_TIMEOUT)
    await page.wait_for_selector(SELECTORS["project_control_tile"], timeout=DIALOG_TIMEOUT)

    for tile in await page.query_selector_all(SELECTORS["project_control_tile"]):
        label = await tile.query_selector(SELECTORS["project_control_label"])
        if label and (await label.inner_text()).strip() == INSTRUCTIONS_TILE_LABEL:
            await tile.click()
            break

    await page.wait_for_selector(SELECTORS["instructions_textarea"], timeout=DIALOG_TIMEOUT)


async def fetch_project_instructions(page: Page, project_href: str, request_id: str = "") -> str:
    """Read a project's instructions; empty string if they can't be read."""
    try:
        logger.info(f"Fetching instructions for project {project_href} for request {request_id}")
        await _open_instructions_dialog(page, project_href)
        value = await page.eval_on_selector(SELECTORS["instructions_textarea"], "ta => ta.value")
        instructions = (value or "").strip()
        logger.info(f"Instructions fetched for {project_href}: {instructions[:100]}...")
        return instructions
    except PlaywrightError as e:
        logger.warning(f"Error fetching instructions for {project_href}: {e}")
        return ""


async def scan_projects(page: Page, request_id: str = "") -> list[ChatProject]:
    """List the projects in the sidebar with their instructions.

    Best effort: a layout without projects yields an empty list.
    """
    try:
        logger.info(f"Scanning chat projects for request {request_id}")
        try:
            await page.wait_for_selector(SELECTORS["projects_heading"], timeout=DIALOG_TIMEOUT)
        except PlaywrightError:
            logger.info("No projects heading found, might be using a different UI layout")

        raw = await page.evaluate(
            _LIST_PROJECTS_JS,
            {"list": SELECTORS["projects_list"], "link": SELECTORS["project_link"]},
        )
        projects = [
            ChatProject(name=p["name"], href=p["href"])
            for p in raw or []
            if p.get("name") and p.get("href", "").endswith("/project")
        ]
        for project in projects:
            project.instructions = await fetch_project_instructions(page, project.href, request_id)

        logger.info(f"Found {len(projects)} projects for request {request_id}")
        return projects
    except PlaywrightError as e:
        logger.warning(f"Error scanning projects for request {request_id}: {e}")
        return []


async def update_instructions(page: Page, project_href: str, new_instructions: str) -> None:
    """Replace a project's instructions and save the dialog."""
    await _open_instructions_dialog(page, project_href)
    if not await page.evaluate(
        _SET_TEXTAREA_JS, [SELECTORS["instructions_textarea"], new_instructions]
    ):
        raise RuntimeError("Instructions editor not found.")

    # Save stays disabled until the dialog has observed the edit
    await asyncio.sleep(SAVE_ENABLE_DELAY)
    save = await page.wait_for_selector(SELECTORS["instructions_save"], timeout=DIALOG_TIMEOUT)
    await page.wait_for_function(
        "btn => btn && !btn.disabled && btn.offsetParent !== null", arg=save, timeout=DIALOG_TIMEOUT
    )
    await save.click(delay=500)
    await asyncio.sleep(SAVE_SETTLE_DELAY)
    logger.info(f"Instructions updated successfully for {project_href}")
