"""Chat surface URLs, DOM selectors, chapter site profiles and text markers."""

# ── URLs ─────────────────────────────────────────────────────────────────────

CHAT_SURFACE_ORIGIN = "https://chatgpt.com"

# ── Chat Surface Selectors ───────────────────────────────────────────────────

SELECTORS = {
    # Composer
    "prompt_input": "#prompt-textarea",
    "send_button": '[data-testid="send-button"]',
    "stop_button": '[data-testid="stop-button"]',

    # Conversation
    "conversation_turn": 'article[data-testid^="conversation-turn-"]',
    "last_turn": 'article[data-testid^="conversation-turn-"]:last-of-type',
    "assistant_message": 'div[data-message-author-role="assistant"] .markdown',

    # Login indicator: only rendered for signed-in users
    "profile_button": '[data-testid="profile-button"]',
    "profile_button_alt": (
        '.flex.h-10.rounded-lg.px-2.text-token-text-secondary[aria-label="Open Profile Menu"]'
    ),

    # Projects sidebar
    "projects_heading": "h2#snorlax-heading",
    "projects_list": 'ul[aria-labelledby="snorlax-heading"]',
    "project_link": 'a[href$="/project"]',
    "project_control_tile": "button.group\\/snorlax-control-tile",
    "project_control_label": ".text-sm.font-medium",
    "instructions_textarea": 'div[role="dialog"] textarea',
    "instructions_save": 'div[role="dialog"] button.btn-primary',
}

INSTRUCTIONS_TILE_LABEL = "Instructions"

# ── Chapter Sites ────────────────────────────────────────────────────────────
# Keyed by site identifier. "default" applies to any host not listed.

SITE_PROFILES = {
    "69yuedu": {
        "hosts": ["69yuedu.net"],
        "title": "h1.hide720",
        "content": ".content",
        "nav_links": ".page1 a[href]",
    },
    "default": {
        "hosts": [],
        "title": ".read_chapterName h1",
        "content": ".read_chapterDetail",
        "nav_links": '.pageNav a[href*="tongren"][href*="html"]',
    },
}

PREV_CHAPTER_LABEL = "上一章"
NEXT_CHAPTER_LABEL = "下一章"

# ── Text Markers ─────────────────────────────────────────────────────────────

CHAPTER_HEADING_PATTERN = r"第\d+章\s.+"

ERROR_SECTION_START = "--- TRANSLATION ERROR FOR THIS SECTION ---"
ERROR_SECTION_END = "--- END OF ERROR SECTION ---"

# Substrings of Playwright errors raised once the browser process is gone
BROWSER_DEAD_PATTERNS = (
    "target closed",
    "target page, context or browser has been closed",
    "browser has been closed",
    "connection closed",
    "browser disconnected",
)
