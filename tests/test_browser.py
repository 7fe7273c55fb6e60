"""
Tests for the WhatsApp Web session that do not need a real browser.
"""

import asyncio

import pytest

from wa_rest.services.browser import CloseReason, Identity, WebSession


@pytest.fixture
def web_session(tmp_path):
    session = WebSession(tmp_path / "profile", headless=True, poll_interval=0.01)
    session.page = object()
    return session


class TestSendSerialization:

    @pytest.mark.asyncio
    async def test_parallel_sends_do_not_interleave(self, web_session):
        steps = []

        async def deliver(jid, text, media):
            steps.append(("open", jid))
            await asyncio.sleep(0.01)
            steps.append(("typed", jid, text))
            return f"ID-{text}"

        web_session._deliver = deliver

        ids = await asyncio.gather(
            web_session.send_message("111@s.whatsapp.net", text="first"),
            web_session.send_message("222@s.whatsapp.net", text="second"),
        )

        assert ids == ["ID-first", "ID-second"]
        assert steps == [
            ("open", "111@s.whatsapp.net"),
            ("typed", "111@s.whatsapp.net", "first"),
            ("open", "222@s.whatsapp.net"),
            ("typed", "222@s.whatsapp.net", "second"),
        ]

    @pytest.mark.asyncio
    async def test_send_without_page(self, web_session):
        web_session.page = None

        with pytest.raises(RuntimeError):
            await web_session.send_message("111@s.whatsapp.net", text="hi")


class TestMonitor:

    @pytest.mark.asyncio
    async def test_browser_close_after_logout_is_silent(self, web_session):
        closes = []
        web_session.on("close", closes.append)
        states = iter([("connected", None), ("qr", "2@again")])

        async def probe():
            return next(states)

        async def read_identity():
            return Identity()

        web_session._probe = probe
        web_session.read_identity = read_identity

        await web_session._monitor()
        web_session._on_context_closed(None)

        assert closes == [CloseReason.LOGGED_OUT]

    def test_unknown_event(self, web_session):
        with pytest.raises(ValueError):
            web_session.on("message", print)
