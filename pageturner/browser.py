"""
Playwright-backed viewport and reader agent for Kindle Cloud Reader.

The reader agent is a small script installed into the page; a reader-side
navigation discards it, which surfaces here as AgentUnavailableError so the
navigation bridge can re-install and retry.
"""

import logging

from playwright.async_api import Error as PlaywrightError

from .config import SIZING_CURRENT, SIZING_MAXIMIZED, resolve_window_size
from .errors import AgentUnavailableError, CaptureError
from .targets import CaptureTarget

logger = logging.getLogger(__name__)

NEXT_CONTROL_SELECTORS = "#kr-chevron-right, .kr-chevron-container-right"
SIGNIN_MARKERS = ("signin", "ap/signin")

READER_AGENT_JS = """
(() => {
    const sleep = (ms) => new Promise((r) => setTimeout(r, ms));
    const CONTROLS = {
        ltr: ["#kr-chevron-right", ".kr-chevron-container-right",
              "#kindleReader_pageTurnAreaRight", "#kindleReader_button_arrow_right"],
        rtl: ["#kr-chevron-left", ".kr-chevron-container-left",
              "#kindleReader_pageTurnAreaLeft", "#kindleReader_button_arrow_left"],
    };
    const FOOTERS = [
        'ion-title[item-i-d="reader-footer-title"] .text-div',
        "ion-footer ion-title",
        ".footer-label-color-default",
        "#kindleReader_footer_message",
        "#kindleReader_pageNums",
        ".kindleReader_footer_message",
    ];

    const press = (key, keyCode) => {
        for (const type of ["keydown", "keyup"]) {
            const evt = new KeyboardEvent(type, {
                key, code: key, keyCode, which: keyCode,
                bubbles: true, cancelable: true, composed: true, view: window,
            });
            document.dispatchEvent(evt);
            document.body.dispatchEvent(evt);
        }
    };

    const visible = (el) => el && el.offsetParent !== null;

    const agent = {
        async goToStart() {
            press("Home", 36);
            const toc = document.querySelector('[data-testid="top_menu_table_of_contents"]');
            if (!toc) return { status: "done", via: "key" };
            toc.click();
            await sleep(1000);
            const cover = document.querySelector('button.toc-item-button[aria-label="Cover"]');
            if (cover) {
                cover.click();
                await sleep(1000);
            }
            const close = document.querySelector(".side-menu-close-button");
            if (close) close.click();
            return { status: "done", via: cover ? "cover" : "key" };
        },
        nextPage(direction) {
            const side = direction === "rtl" ? "rtl" : "ltr";
            for (const selector of CONTROLS[side]) {
                const el = document.querySelector(selector);
                if (visible(el)) {
                    el.click();
                    return { status: "done", via: selector };
                }
            }
            if (side === "rtl") press("ArrowLeft", 37);
            else press("ArrowRight", 39);
            return { status: "done", via: "key" };
        },
        getMetadata() {
            const footers = [];
            for (const selector of FOOTERS) {
                const el = document.querySelector(selector);
                if (el && el.textContent && el.textContent.trim()) {
                    footers.push(el.textContent.trim());
                }
            }
            return { title: document.title || "", footers };
        },
    };

    window.__pageturnerAgent = {
        handle(action, arg) {
            if (action === "GO_TO_START") return agent.goToStart();
            if (action === "NEXT_PAGE") return agent.nextPage(arg);
            if (action === "GET_METADATA") return agent.getMetadata();
            throw new Error("unknown action " + action);
        },
    };
    return true;
})()
"""

CALL_AGENT_JS = """
([action, arg]) => {
    const agent = window.__pageturnerAgent;
    if (!agent) throw new Error("pageturner agent is not installed");
    return agent.handle(action, arg);
}
"""


class PlaywrightReaderAgent:
    def __init__(self, page):
        self.page = page

    async def install(self):
        try:
            await self.page.evaluate(READER_AGENT_JS)
        except PlaywrightError as exc:
            raise AgentUnavailableError(f"could not install reader agent: {exc}") from exc

    async def send(self, command):
        message = command.to_message()
        arg = message.get("direction")
        try:
            reply = await self.page.evaluate(CALL_AGENT_JS, [message["action"], arg])
        except PlaywrightError as exc:
            raise AgentUnavailableError(str(exc)) from exc
        return reply if isinstance(reply, dict) else {}


class PlaywrightViewport:
    def __init__(self, page):
        self.page = page

    async def resize(self, sizing):
        key = (sizing or SIZING_CURRENT).strip().lower()
        if key == SIZING_CURRENT:
            return
        if key == SIZING_MAXIMIZED:
            screen = await self.page.evaluate(
                "() => ({ width: window.screen.availWidth, height: window.screen.availHeight })"
            )
            width, height = int(screen["width"]), int(screen["height"])
        else:
            width, height = resolve_window_size(key)
        logger.info("Setting viewport to %dx%d", width, height)
        await self.page.set_viewport_size({"width": width, "height": height})

    async def screenshot(self, quality):
        return await self.page.screenshot(type="jpeg", quality=quality)


class PlaywrightTargets:
    """Maps tab ids handed to the controller onto open Playwright pages."""

    def __init__(self):
        self._pages = {}

    def register(self, page):
        tab_id = f"tab-{len(self._pages)}"
        self._pages[tab_id] = page
        return tab_id

    def resolve(self, viewport_id, tab_id):
        page = self._pages.get(tab_id)
        if page is None:
            raise CaptureError(f"unknown tab: {tab_id}")
        viewport_page = self._pages.get(viewport_id, page)
        return CaptureTarget(
            viewport=PlaywrightViewport(viewport_page),
            agent=PlaywrightReaderAgent(page),
        )


async def open_reader(playwright, profile_dir, url, headless=False):
    """Open the reader in a persistent context; wait for login if needed."""
    # Persistent context keeps the reader login across runs.
    context = await playwright.chromium.launch_persistent_context(
        user_data_dir=str(profile_dir),
        headless=headless,
        viewport={"width": 1280, "height": 900},
    )
    page = context.pages[0] if context.pages else await context.new_page()
    await page.goto(url, wait_until="domcontentloaded")

    if any(marker in page.url for marker in SIGNIN_MARKERS):
        print("Please log into Amazon in the browser window.")
        print("Waiting for you to complete login...")
        await page.wait_for_url("**/read.amazon.com/**", timeout=300_000)
        print("Login detected! Waiting for book to load...")

    try:
        await page.wait_for_selector(NEXT_CONTROL_SELECTORS, state="visible", timeout=30_000)
    except PlaywrightError:
        print("Warning: next-page controls not visible within 30s; continuing.")

    return context, page

