import asyncio
import re
import shutil
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Optional

from wa_rest.core import config
from wa_rest.core.exceptions import (
    DeliveryFailedError,
    InvalidArgumentError,
    NotReadyError,
    TransientIOError,
    UpstreamError,
)
from wa_rest.core.logging import log
from wa_rest.services import qr
from wa_rest.services.browser import CloseReason, Identity, WebSession
from wa_rest.services.timers import OneShotTimer

DIRECT_SUFFIX = "@s.whatsapp.net"
GROUP_SUFFIX = "@g.us"


class Phase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    AWAITING_SCAN = "awaiting_scan"
    READY = "ready"
    CLOSING = "closing"


@dataclass
class ConnectionState:
    phase: Phase = Phase.IDLE
    qr: Optional[str] = None
    session: object = None
    identity: Optional[Identity] = None
    reconnect_attempt: int = 0


@dataclass(frozen=True)
class Snapshot:
    phase: Phase
    has_qr: bool
    has_identity: bool
    identity: Optional[Identity]
    has_session: bool

    @property
    def is_ready(self):
        return self.phase is Phase.READY


@dataclass(frozen=True)
class DisconnectResult:
    deleted_auth: bool


@dataclass(frozen=True)
class SendResult:
    message_id: Optional[str]
    jid: str


@dataclass(frozen=True)
class GroupSummary:
    id: str
    subject: Optional[str] = None
    participants: Optional[int] = None
    owner: Optional[str] = None
    creation: Optional[int] = None
    description: Optional[str] = None


def normalize_target(target):
    """Turn a phone number or chat id into a routing address.

    Addresses that already carry a group or direct-chat suffix pass through
    unchanged; anything else is reduced to its digits.

    >>> normalize_target("+62 899-981-2190")
    '628999812190@s.whatsapp.net'
    """
    target = (target or "").strip()
    if target.endswith(GROUP_SUFFIX) or target.endswith(DIRECT_SUFFIX):
        return target

    digits = re.sub(r"\D", "", target)
    if not digits:
        raise InvalidArgumentError("Number is required", details={"number": target})
    return f"{digits}{DIRECT_SUFFIX}"


class WhatsAppService:
    """Connection lifecycle manager.

    Sole owner of the session handle and the connection state, the only code
    touching the credential directory, and the only place timers are
    scheduled. HTTP handlers go through the public methods and read state via
    ``get_snapshot()``.
    """

    def __init__(
        self,
        session_factory=WebSession,
        auth_dir=None,
        reconnect_delay=None,
        disconnect_reconnect_delay=None,
        retry_delay=None,
        print_qr=None,
    ):
        self._session_factory = session_factory
        self.auth_dir = Path(auth_dir or config.AUTH_DIR)
        self.reconnect_delay = config.RECONNECT_DELAY if reconnect_delay is None else reconnect_delay
        self.disconnect_reconnect_delay = (
            config.DISCONNECT_RECONNECT_DELAY if disconnect_reconnect_delay is None else disconnect_reconnect_delay
        )
        self.retry_delay = config.INIT_RETRY_DELAY if retry_delay is None else retry_delay
        self.print_qr = config.PRINT_QR if print_qr is None else print_qr
        self._state = ConnectionState()
        self._timers = set()
        # Connect and disconnect never overlap
        self._lifecycle_lock = asyncio.Lock()

    # -- reads ---------------------------------------------------------------

    @property
    def phase(self):
        return self._state.phase

    @property
    def reconnect_attempt(self):
        return self._state.reconnect_attempt

    @property
    def pending_timers(self):
        return [t for t in self._timers if t.pending]

    def get_snapshot(self):
        state = self._state
        return Snapshot(
            phase=state.phase,
            has_qr=state.qr is not None,
            has_identity=state.identity is not None,
            identity=state.identity,
            has_session=state.session is not None,
        )

    def current_qr(self):
        return self._state.qr

    def is_ready(self):
        return self._state.phase is Phase.READY

    def ensure_ready(self):
        if not self.is_ready() or self._state.session is None:
            raise NotReadyError()

    # -- transitions ----------------------------------------------------------

    def _set_phase(self, phase):
        if self._state.phase is not phase:
            log.info(f"Connection phase: {self._state.phase.value} -> {phase.value}")
        self._state.phase = phase
        if phase is not Phase.AWAITING_SCAN:
            self._state.qr = None
        if phase is not Phase.READY:
            self._state.identity = None

    async def request_connect(self):
        async with self._lifecycle_lock:
            return await self._connect()

    async def _connect(self):
        if self._state.phase is Phase.READY:
            return self.get_snapshot()

        # A connect in progress supersedes any scheduled one
        self._cancel_timers()

        stale, self._state.session = self._state.session, None
        if stale is not None:
            await self._teardown(stale)

        self._set_phase(Phase.CONNECTING)

        session = None
        try:
            session = self._session_factory(self.auth_dir)
            self._subscribe(session)
            self._state.session = session
            await session.start()
        except Exception as e:
            if self._state.session is not session:
                # Superseded by a newer connect while this one was starting
                raise TransientIOError(f"Session start superseded: {e}") from e
            log.error(f"Error initializing WhatsApp session: {e}")
            self._state.session = None
            if session is not None:
                await self._teardown(session)
            self._set_phase(Phase.IDLE)
            self._schedule_connect(self.retry_delay, "init-retry")
            raise TransientIOError(str(e)) from e

        return self.get_snapshot()

    def _subscribe(self, session):
        session.on("qr", partial(self._dispatch, session, self.on_qr))
        session.on("open", partial(self._dispatch, session, self.on_open))
        session.on("close", partial(self._dispatch, session, self.on_close))

    def _dispatch(self, session, handler, *args):
        if session is not self._state.session:
            log.debug(f"Dropping {handler.__name__} from a stale session")
            return
        handler(*args)

    def on_qr(self, token):
        if self._state.phase not in (Phase.CONNECTING, Phase.AWAITING_SCAN):
            log.debug(f"Ignoring QR while {self._state.phase.value}")
            return

        log.info("QR Code received, scan it!")
        self._set_phase(Phase.AWAITING_SCAN)
        self._state.qr = token

        if self.print_qr:
            try:
                print(qr.to_ascii(token), flush=True)
            except Exception as e:
                log.warning(f"Could not print QR code: {e}")

    def on_open(self, identity):
        self._set_phase(Phase.READY)
        self._state.identity = identity or Identity()
        self._state.reconnect_attempt = 0
        log.info("WhatsApp client is ready!")

    def on_close(self, reason):
        # Idle with a session means it was logged out; only a new connect revives it
        if self._state.phase in (Phase.CLOSING, Phase.IDLE):
            return

        try:
            reason = CloseReason(reason)
        except ValueError:
            reason = CloseReason.CONNECTION_LOST
        self._state.qr = None
        self._state.identity = None

        if reason.is_terminal:
            log.warning(f"Connection closed ({reason.value}); re-authentication required")
            self._set_phase(Phase.IDLE)
            return

        self._state.reconnect_attempt += 1
        log.warning(
            f"Connection closed ({reason.value}), reconnecting in {self.reconnect_delay}s "
            f"(attempt {self._state.reconnect_attempt})"
        )
        self._set_phase(Phase.CONNECTING)
        self._schedule_connect(self.reconnect_delay, "reconnect")

    async def request_disconnect(self, wipe_credentials=False, reconnect=True):
        async with self._lifecycle_lock:
            return await self._disconnect(wipe_credentials, reconnect)

    async def _disconnect(self, wipe_credentials, reconnect):
        session = self._state.session
        if session is None:
            if not reconnect:
                self._cancel_timers()
            deleted = self._wipe_credentials() if wipe_credentials else False
            return DisconnectResult(deleted_auth=deleted)

        self._cancel_timers()
        self._set_phase(Phase.CLOSING)

        if wipe_credentials:
            try:
                await session.logout()
            except Exception as e:
                log.warning(f"Logout failed (continuing): {e}")

        await self._teardown(session)
        if self._state.session is session:
            self._state.session = None
            self._set_phase(Phase.IDLE)

        # Only once the browser is gone, so nothing writes into the profile
        deleted = self._wipe_credentials() if wipe_credentials else False

        if not wipe_credentials and reconnect:
            self._schedule_connect(self.disconnect_reconnect_delay, "reconnect-after-disconnect")

        return DisconnectResult(deleted_auth=deleted)

    async def clear_auth(self):
        result = await self.request_disconnect(wipe_credentials=True, reconnect=False)
        await self.request_connect()
        return result

    # -- operations -------------------------------------------------------------

    async def send_message(self, target, text=None, media=None):
        self.ensure_ready()

        if not target or not str(target).strip():
            raise InvalidArgumentError("Number is required")
        if not text and media is None:
            raise InvalidArgumentError("Message is required when no image is provided")

        jid = normalize_target(target)
        try:
            message_id = await self._state.session.send_message(jid, text=text, media=media)
        except Exception as e:
            log.error(f"Error sending message to {jid}: {e}")
            raise DeliveryFailedError(str(e)) from e

        log.info(f"Message sent to {jid} ({message_id})")
        return SendResult(message_id=message_id, jid=jid)

    async def list_groups(self):
        self.ensure_ready()

        try:
            raw_groups = await self._state.session.fetch_groups()
        except Exception as e:
            log.error(f"Error fetching groups: {e}")
            raise UpstreamError(str(e)) from e

        return [
            GroupSummary(
                id=g.get("id"),
                subject=g.get("subject"),
                participants=g.get("participants"),
                owner=g.get("owner"),
                creation=g.get("creation"),
                description=g.get("description"),
            )
            for g in raw_groups or []
            if g.get("id")
        ]

    async def close(self):
        """Shutdown: stop timers and the browser, keep credentials."""
        self._cancel_timers()
        session = self._state.session
        if session is not None:
            self._set_phase(Phase.CLOSING)
            await self._teardown(session)
            self._state.session = None
        self._set_phase(Phase.IDLE)

    # -- helpers ----------------------------------------------------------------

    async def _teardown(self, session):
        try:
            await session.close()
        except Exception as e:
            log.warning(f"Error closing session (ignored): {e}")

    def _wipe_credentials(self):
        if not self.auth_dir.exists():
            return False
        try:
            shutil.rmtree(self.auth_dir)
        except OSError as e:
            log.error(f"Error deleting credentials at {self.auth_dir}: {e}")
            return False
        log.info(f"Deleted credentials at {self.auth_dir}")
        return True

    def _schedule_connect(self, delay, name):
        timer = OneShotTimer(delay, self._timed_connect, name=name, on_done=self._timers.discard)
        self._timers.add(timer)
        timer.start()
        return timer

    async def _timed_connect(self):
        if self._state.phase in (Phase.READY, Phase.CLOSING):
            log.debug(f"Skipping scheduled connect while {self._state.phase.value}")
            return
        try:
            await self.request_connect()
        except TransientIOError as e:
            log.warning(f"Scheduled connect failed: {e}")

    def _cancel_timers(self):
        for timer in list(self._timers):
            timer.cancel()


service = WhatsAppService()
