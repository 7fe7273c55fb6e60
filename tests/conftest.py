import asyncio
import os

import pytest

from wa_rest.services.browser import Identity
from wa_rest.services.whatsapp import Phase, WhatsAppService


class FakeSession:
    """Stand-in for the browser session: records calls, emits events on demand."""

    def __init__(self, auth_dir):
        self.auth_dir = auth_dir
        self.listeners = {"qr": [], "open": [], "close": []}
        self.started = False
        self.closed = False
        self.logged_out = False
        self.auth_present_at_close = None
        self.sent = []
        self.groups = []
        self.start_error = None
        self.send_error = None
        self.groups_error = None
        self.logout_error = None
        self.close_error = None
        self.close_delay = 0

    def on(self, event, listener):
        self.listeners[event].append(listener)

    def emit(self, event, *args):
        for listener in list(self.listeners[event]):
            listener(*args)

    async def start(self):
        if self.start_error:
            raise self.start_error
        self.started = True

    async def send_message(self, jid, text=None, media=None):
        if self.send_error:
            raise self.send_error
        file_present = None
        if media is not None:
            file_present = os.path.exists(media.path)
        self.sent.append({"jid": jid, "text": text, "media": media, "file_present": file_present})
        return "3EB0C431C26A1916E0A9"

    async def fetch_groups(self):
        if self.groups_error:
            raise self.groups_error
        return self.groups

    async def logout(self):
        if self.logout_error:
            raise self.logout_error
        self.logged_out = True

    async def close(self):
        self.auth_present_at_close = self.auth_dir.exists()
        if self.close_delay:
            await asyncio.sleep(self.close_delay)
        self.closed = True
        if self.close_error:
            raise self.close_error


class SessionFactory:
    def __init__(self):
        self.sessions = []
        self.construct_error = None
        self.close_delay = 0

    def __call__(self, auth_dir):
        if self.construct_error:
            raise self.construct_error
        session = FakeSession(auth_dir)
        session.close_delay = self.close_delay
        self.sessions.append(session)
        return session

    @property
    def current(self):
        return self.sessions[-1]

    @property
    def live(self):
        return [s for s in self.sessions if s.started and not s.closed]


ME = Identity(id="628999812190@s.whatsapp.net", display_name="Gateway")


def assert_invariants(manager):
    snapshot = manager.get_snapshot()
    if snapshot.has_qr:
        assert snapshot.phase is Phase.AWAITING_SCAN
    assert snapshot.has_identity == (snapshot.phase is Phase.READY)


async def make_ready(manager, factory, identity=ME):
    await manager.request_connect()
    factory.current.emit("open", identity)
    assert manager.phase is Phase.READY
    return factory.current


@pytest.fixture
def factory():
    return SessionFactory()


@pytest.fixture
def auth_dir(tmp_path):
    path = tmp_path / "auth_info"
    path.mkdir()
    (path / "Default").mkdir()
    (path / "Default" / "Cookies").write_text("session")
    return path


@pytest.fixture
def manager(factory, auth_dir):
    return WhatsAppService(
        session_factory=factory,
        auth_dir=auth_dir,
        reconnect_delay=0.05,
        disconnect_reconnect_delay=0.05,
        retry_delay=0.05,
        print_qr=False,
    )


@pytest.fixture
def ready_manager(manager, factory):
    asyncio.run(make_ready(manager, factory))
    return manager
