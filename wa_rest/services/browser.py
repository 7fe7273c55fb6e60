import asyncio
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from playwright.async_api import async_playwright, Error as PlaywrightError

from wa_rest.core import config
from wa_rest.core.logging import log


class CloseReason(str, Enum):
    LOGGED_OUT = "logged_out"
    BROWSER_CLOSED = "browser_closed"
    PAGE_CRASHED = "page_crashed"
    CONNECTION_LOST = "connection_lost"

    @property
    def is_terminal(self):
        # The linked device was removed remotely; stored credentials are dead.
        return self is CloseReason.LOGGED_OUT


@dataclass(frozen=True)
class Identity:
    id: Optional[str] = None
    display_name: Optional[str] = None


@dataclass(frozen=True)
class MediaPayload:
    path: str
    mimetype: str
    filename: Optional[str] = None

    @property
    def is_visual(self):
        return self.mimetype.startswith(("image/", "video/"))


# Fixed User Agent
REAL_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

CHAT_LIST_SELECTORS = ("#pane-side", "#side", '[data-testid="chat-list"]')
QR_SELECTOR = "div[data-ref]"
COMPOSE_SELECTOR = 'div[contenteditable="true"][data-tab="10"]'
CAPTION_SELECTOR = 'div[contenteditable="true"][data-tab="6"]'
ATTACH_SELECTORS = ('span[data-icon="plus"]', 'span[data-icon="attach-menu-plus"]', 'span[data-icon="clip"]')
SEND_SELECTOR = 'span[data-icon="send"]'
OUTGOING_SELECTOR = '#main div[data-id^="true_"]'

READ_IDENTITY_JS = """
() => {
    let id = null;
    let name = null;
    try {
        const me = window.require('WAWebUserPrefsMeUser').getMaybeMeUser();
        if (me) id = me._serialized;
        const conn = window.require('WAWebConnModel').Conn;
        if (conn) name = conn.pushname || null;
    } catch (e) {}
    if (!id) {
        const wid = window.localStorage.getItem('last-wid-md') || window.localStorage.getItem('last-wid');
        if (wid) id = wid.replace(/"/g, '');
    }
    return { id, name };
}
"""

OPEN_CHAT_JS = """
async (jid) => {
    try {
        const { Chat } = window.require('WAWebCollections');
        const { Cmd } = window.require('WAWebCmd');
        const wid = window.require('WAWebWidFactory').createWid(jid);
        const chat = Chat.get(wid) || await Chat.find(wid);
        if (!chat) return false;
        await Cmd.openChatBottomAt({ chat });
        return true;
    } catch (e) {
        return false;
    }
}
"""

FETCH_GROUPS_JS = """
() => {
    const { Chat } = window.require('WAWebCollections');
    return Chat.getModelsArray().filter(c => c.isGroup).map(c => {
        const meta = c.groupMetadata;
        return {
            id: c.id._serialized,
            subject: c.formattedTitle || c.name || null,
            participants: meta && meta.participants ? meta.participants.length : null,
            owner: meta && meta.owner ? meta.owner._serialized : null,
            creation: meta ? meta.creation || null : null,
            description: meta ? meta.desc || null : null,
        };
    });
}
"""


class WebSession:
    """One WhatsApp Web session driven through a persistent Chromium profile.

    The profile directory is the credential store: a linked device stays
    linked as long as the directory survives. The session raises three events:

    * ``qr(token)`` each time the login page shows a new QR token
    * ``open(identity)`` once the chat list is visible
    * ``close(reason)`` when the browser goes away or the device is unlinked

    Events are delivered synchronously, in the order they are detected.
    """

    EVENTS = ("qr", "open", "close")

    def __init__(self, user_data_dir, headless=None, poll_interval=None):
        self.user_data_dir = str(user_data_dir)
        self.headless = config.HEADLESS if headless is None else headless
        self.poll_interval = config.POLL_INTERVAL if poll_interval is None else poll_interval
        self.playwright = None
        self.context = None
        self.page = None
        self._listeners = {event: [] for event in self.EVENTS}
        self._monitor_task = None
        self._closing = False
        self._opened = False
        self._last_qr = None
        # One page per session: chat navigation and typing must not interleave
        self._page_lock = asyncio.Lock()

    def on(self, event, listener):
        if event not in self._listeners:
            raise ValueError(f"Unknown session event: {event}")
        self._listeners[event].append(listener)

    def _emit(self, event, *args):
        for listener in list(self._listeners[event]):
            listener(*args)

    async def start(self):
        os.makedirs(self.user_data_dir, exist_ok=True)
        log.info(f"Starting browser session (profile: {self.user_data_dir})")
        self.playwright = await async_playwright().start()

        launch_args = {
            "headless": self.headless,
            "user_agent": REAL_USER_AGENT,
            "args": ["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage"],
            "viewport": {"width": 1280, "height": 800},
        }

        if config.BROWSER_EXECUTABLE_PATH:
            log.info(f"Using custom executable: {config.BROWSER_EXECUTABLE_PATH}")
            launch_args["executable_path"] = config.BROWSER_EXECUTABLE_PATH
        elif config.BROWSER_CHANNEL:
            launch_args["channel"] = config.BROWSER_CHANNEL

        try:
            self.context = await self.playwright.chromium.launch_persistent_context(
                user_data_dir=self.user_data_dir,
                **launch_args
            )
            self.context.on("close", self._on_context_closed)

            if len(self.context.pages) > 0:
                self.page = self.context.pages[0]
            else:
                self.page = await self.context.new_page()
            self.page.on("crash", self._on_page_crash)

            log.info(f"Navigating to {config.WHATSAPP_URL}")
            await self.page.goto(config.WHATSAPP_URL, timeout=60000)
        except Exception:
            await self._shutdown_browser()
            raise

        self._monitor_task = asyncio.create_task(self._monitor())

    async def _monitor(self):
        """Poll the page until the session closes, translating what it shows into events."""
        while not self._closing:
            try:
                state, token = await self._probe()
            except PlaywrightError as e:
                if self._closing or self.page is None:
                    break
                log.debug(f"Page probe failed: {e}")
                await asyncio.sleep(self.poll_interval)
                continue

            if state == "connected" and not self._opened:
                self._opened = True
                self._last_qr = None
                identity = await self.read_identity()
                log.info(f"Chat list visible, logged in as {identity.id}")
                self._emit("open", identity)
            elif state == "qr":
                if self._opened:
                    # Login page came back after a live session: device was unlinked
                    self._opened = False
                    self._closing = True
                    log.warning("Session invalidated by the phone (logged out)")
                    self._emit("close", CloseReason.LOGGED_OUT)
                    break
                if token and token != self._last_qr:
                    self._last_qr = token
                    self._emit("qr", token)

            await asyncio.sleep(self.poll_interval)

    async def _probe(self):
        if self.page is None:
            raise PlaywrightError("page is gone")

        for selector in CHAT_LIST_SELECTORS:
            if await self.page.locator(selector).count() > 0:
                return "connected", None

        qr = self.page.locator(QR_SELECTOR).first
        if await qr.count() > 0:
            return "qr", await qr.get_attribute("data-ref")

        return "loading", None

    async def read_identity(self):
        try:
            data = await self.page.evaluate(READ_IDENTITY_JS) or {}
        except PlaywrightError as e:
            log.debug(f"Could not read identity: {e}")
            data = {}
        return Identity(id=data.get("id"), display_name=data.get("name"))

    async def _open_chat(self, jid):
        if await self.page.evaluate(OPEN_CHAT_JS, jid):
            return

        if jid.endswith("@g.us"):
            raise RuntimeError(f"Group {jid} not found")

        phone = jid.split("@", 1)[0]
        await self.page.goto(f"{config.WHATSAPP_URL}/send?phone={phone}")

    async def _last_outgoing_id(self):
        rows = self.page.locator(OUTGOING_SELECTOR)
        count = await rows.count()
        if count == 0:
            return None
        return await rows.nth(count - 1).get_attribute("data-id")

    async def _click_first(self, selectors):
        for selector in selectors:
            button = self.page.locator(selector).first
            if await button.count() > 0:
                await button.click()
                return
        raise RuntimeError("Attach button not found")

    async def send_message(self, jid, text=None, media=None):
        """Send text and/or a media file to ``jid``. Returns the message id."""
        async with self._page_lock:
            if self.page is None:
                raise RuntimeError("Browser session is not running")
            return await self._deliver(jid, text, media)

    async def _deliver(self, jid, text, media):
        await self._open_chat(jid)

        message_box = self.page.locator(COMPOSE_SELECTOR)
        await message_box.wait_for(state="visible", timeout=45000)
        before = await self._last_outgoing_id()

        if media:
            log.info(f"Attaching {media.mimetype} file to {jid}")
            await self._click_first(ATTACH_SELECTORS)

            if media.is_visual:
                file_input = self.page.locator('input[type="file"][accept*="image"]').first
            else:
                file_input = self.page.locator('input[type="file"][accept="*"]').first
            await file_input.set_input_files(media.path)

            send_btn = self.page.locator(SEND_SELECTOR)
            await send_btn.wait_for(state="visible", timeout=15000)
            if text:
                await self.page.locator(CAPTION_SELECTOR).first.fill(text)
            await send_btn.click()
        else:
            await message_box.click()
            await message_box.fill(text)
            await message_box.press("Enter")

        return await self._wait_for_outgoing(before)

    async def _wait_for_outgoing(self, before, timeout=30.0):
        waited = 0.0
        while waited < timeout:
            current = await self._last_outgoing_id()
            if current and current != before:
                # data-id is "true_<jid>_<message id>"
                return current.rsplit("_", 1)[-1]
            await asyncio.sleep(0.5)
            waited += 0.5
        raise RuntimeError("Message did not appear in the chat")

    async def fetch_groups(self):
        async with self._page_lock:
            if self.page is None:
                raise RuntimeError("Browser session is not running")
            return await self.page.evaluate(FETCH_GROUPS_JS)

    async def logout(self):
        """Unlink this device through the WhatsApp Web menu."""
        async with self._page_lock:
            if self.page is None:
                return
            await self.page.locator('span[data-icon="menu"]').first.click()
            await self.page.get_by_text("Log out", exact=True).first.click()
            await self.page.get_by_role("button", name="Log out").click()
            await asyncio.sleep(2)

    def _on_context_closed(self, _context):
        if self._closing:
            return
        log.warning("Browser context closed")
        self._closing = True
        self.page = None
        self.context = None
        self._emit("close", CloseReason.BROWSER_CLOSED)

    def _on_page_crash(self, _page):
        if self._closing:
            return
        log.error("WhatsApp Web page crashed")
        self._closing = True
        self._emit("close", CloseReason.PAGE_CRASHED)

    async def close(self):
        self._closing = True
        if self._monitor_task:
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
            self._monitor_task = None
        await self._shutdown_browser()

    async def _shutdown_browser(self):
        self._closing = True
        try:
            if self.context:
                await self.context.close()
        finally:
            if self.playwright:
                await self.playwright.stop()
            self.page = None
            self.context = None
            self.playwright = None
