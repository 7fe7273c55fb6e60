"""
Tests for the connection lifecycle: connect, QR, open, close and reconnects.
"""

import asyncio

import pytest

from conftest import ME, assert_invariants, make_ready
from wa_rest.core.exceptions import TransientIOError
from wa_rest.services.browser import CloseReason, Identity
from wa_rest.services.whatsapp import Phase


class TestConnect:

    def test_initial_snapshot(self, manager):
        snapshot = manager.get_snapshot()
        assert snapshot.phase is Phase.IDLE
        assert snapshot.has_qr is False
        assert snapshot.has_identity is False
        assert snapshot.identity is None
        assert snapshot.has_session is False

    @pytest.mark.asyncio
    async def test_request_connect_starts_session(self, manager, factory, auth_dir):
        snapshot = await manager.request_connect()

        assert snapshot.phase is Phase.CONNECTING
        assert snapshot.has_session is True
        session = factory.current
        assert session.started is True
        assert session.auth_dir == auth_dir
        assert all(len(listeners) == 1 for listeners in session.listeners.values())

    @pytest.mark.asyncio
    async def test_request_connect_is_noop_when_ready(self, manager, factory):
        await make_ready(manager, factory)

        snapshot = await manager.request_connect()

        assert snapshot.phase is Phase.READY
        assert len(factory.sessions) == 1
        assert factory.current.closed is False

    @pytest.mark.asyncio
    async def test_request_connect_closes_stale_session_first(self, manager, factory):
        await manager.request_connect()
        first = factory.current

        await manager.request_connect()

        assert first.closed is True
        assert len(factory.sessions) == 2
        assert factory.current is not first
        assert manager.get_snapshot().has_session is True

    @pytest.mark.asyncio
    async def test_construction_failure_schedules_retry(self, manager, factory):
        factory.construct_error = OSError("profile directory is locked")

        with pytest.raises(TransientIOError) as exc_info:
            await manager.request_connect()

        assert "profile directory is locked" in exc_info.value.message
        assert manager.phase is Phase.IDLE
        assert manager.get_snapshot().has_session is False
        assert len(manager.pending_timers) == 1

        factory.construct_error = None
        await asyncio.sleep(0.15)

        assert manager.phase is Phase.CONNECTING
        assert len(factory.sessions) == 1
        await manager.close()

    @pytest.mark.asyncio
    async def test_start_failure_tears_down_session(self, manager, factory):
        original_call = factory.__class__.__call__

        def failing_factory(auth_dir):
            session = original_call(factory, auth_dir)
            session.start_error = RuntimeError("net::ERR_NAME_NOT_RESOLVED")
            return session

        manager._session_factory = failing_factory

        with pytest.raises(TransientIOError):
            await manager.request_connect()

        assert factory.current.closed is True
        assert manager.phase is Phase.IDLE
        await manager.close()


class TestSessionEvents:

    @pytest.mark.asyncio
    async def test_qr_moves_to_awaiting_scan(self, manager, factory):
        await manager.request_connect()

        factory.current.emit("qr", "2@abc,def,ghi")

        assert manager.phase is Phase.AWAITING_SCAN
        assert manager.current_qr() == "2@abc,def,ghi"
        assert_invariants(manager)

    @pytest.mark.asyncio
    async def test_newer_qr_replaces_older(self, manager, factory):
        await manager.request_connect()

        factory.current.emit("qr", "2@first")
        factory.current.emit("qr", "2@second")

        assert manager.current_qr() == "2@second"

    def test_qr_ignored_while_idle(self, manager):
        manager.on_qr("2@late")

        assert manager.phase is Phase.IDLE
        assert manager.current_qr() is None

    @pytest.mark.asyncio
    async def test_open_moves_to_ready(self, manager, factory):
        await manager.request_connect()
        factory.current.emit("qr", "2@abc")

        factory.current.emit("open", ME)

        snapshot = manager.get_snapshot()
        assert snapshot.phase is Phase.READY
        assert snapshot.has_qr is False
        assert snapshot.identity == ME
        assert manager.reconnect_attempt == 0
        assert_invariants(manager)

    @pytest.mark.asyncio
    async def test_open_without_identity_still_has_identity(self, manager, factory):
        await manager.request_connect()

        factory.current.emit("open", None)

        assert manager.get_snapshot().identity == Identity()
        assert_invariants(manager)

    @pytest.mark.asyncio
    async def test_events_from_stale_session_are_dropped(self, manager, factory):
        await manager.request_connect()
        stale = factory.current
        await manager.request_connect()

        stale.emit("open", ME)
        stale.emit("close", CloseReason.BROWSER_CLOSED)

        assert manager.phase is Phase.CONNECTING
        assert manager.pending_timers == []

    @pytest.mark.asyncio
    async def test_close_before_scan_clears_qr(self, manager, factory):
        await manager.request_connect()
        factory.current.emit("qr", "2@abc")

        factory.current.emit("close", CloseReason.LOGGED_OUT)

        assert manager.phase is Phase.IDLE
        assert manager.current_qr() is None
        assert_invariants(manager)


class TestReconnect:

    @pytest.mark.asyncio
    async def test_recoverable_close_schedules_one_reconnect(self, manager, factory):
        first = await make_ready(manager, factory)

        first.emit("close", CloseReason.BROWSER_CLOSED)

        assert manager.phase is Phase.CONNECTING
        assert manager.reconnect_attempt == 1
        assert len(manager.pending_timers) == 1
        assert_invariants(manager)

        await asyncio.sleep(0.15)

        # The timer ran request_connect fully: stale handle closed, new one started
        assert first.closed is True
        assert len(factory.sessions) == 2
        assert factory.current.started is True
        assert manager.pending_timers == []
        await manager.close()

    @pytest.mark.asyncio
    async def test_reconnect_attempts_reset_on_open(self, manager, factory):
        first = await make_ready(manager, factory)
        first.emit("close", CloseReason.PAGE_CRASHED)
        await asyncio.sleep(0.15)

        factory.current.emit("open", ME)

        assert manager.reconnect_attempt == 0
        await manager.close()

    @pytest.mark.asyncio
    async def test_terminal_close_does_not_reconnect(self, manager, factory):
        first = await make_ready(manager, factory)
        first.emit("close", CloseReason.BROWSER_CLOSED)
        await asyncio.sleep(0.15)
        factory.current.emit("close", CloseReason.PAGE_CRASHED)
        assert manager.reconnect_attempt == 2
        await asyncio.sleep(0.15)

        factory.current.emit("close", CloseReason.LOGGED_OUT)

        assert manager.phase is Phase.IDLE
        assert manager.pending_timers == []
        await asyncio.sleep(0.15)
        assert len(factory.sessions) == 3
        assert_invariants(manager)

    @pytest.mark.asyncio
    async def test_timer_is_noop_when_ready_before_it_fires(self, manager, factory):
        session = await make_ready(manager, factory)
        session.emit("close", CloseReason.BROWSER_CLOSED)

        # Session recovered on its own before the timer fired
        session.emit("open", ME)
        await asyncio.sleep(0.15)

        assert manager.phase is Phase.READY
        assert len(factory.sessions) == 1
        assert session.closed is False

    @pytest.mark.asyncio
    async def test_unknown_close_reason_is_recoverable(self, manager, factory):
        session = await make_ready(manager, factory)

        session.emit("close", "stream_errored")

        assert manager.phase is Phase.CONNECTING
        assert len(manager.pending_timers) == 1
        await manager.close()

    @pytest.mark.asyncio
    async def test_invariants_hold_across_event_sequence(self, manager, factory):
        await manager.request_connect()
        session = factory.current
        steps = [
            ("qr", "2@one"),
            ("qr", "2@two"),
            ("open", ME),
            ("qr", "2@ignored"),
            ("close", CloseReason.CONNECTION_LOST),
        ]
        for event, arg in steps:
            session.emit(event, arg)
            assert_invariants(manager)

        assert manager.current_qr() is None
        await manager.close()
        assert_invariants(manager)

    @pytest.mark.asyncio
    async def test_close_after_logout_does_not_reconnect(self, manager, factory):
        session = await make_ready(manager, factory)

        session.emit("close", CloseReason.LOGGED_OUT)
        session.emit("close", CloseReason.BROWSER_CLOSED)
        await asyncio.sleep(0.15)

        assert manager.phase is Phase.IDLE
        assert manager.pending_timers == []
        assert len(factory.sessions) == 1

        await manager.request_connect()

        assert session.closed is True
        assert manager.phase is Phase.CONNECTING
        await manager.close()


class TestConcurrentRequests:

    @pytest.mark.asyncio
    async def test_overlapping_connects_leave_one_live_session(self, manager, factory):
        factory.close_delay = 0.05
        await manager.request_connect()

        await asyncio.gather(manager.request_connect(), manager.request_connect())

        assert len(factory.sessions) == 3
        assert factory.live == [factory.current]
        assert manager.get_snapshot().has_session is True
        await manager.close()

    @pytest.mark.asyncio
    async def test_connect_cancels_pending_reconnect(self, manager, factory):
        factory.close_delay = 0.05
        first = await make_ready(manager, factory)
        first.emit("close", CloseReason.BROWSER_CLOSED)
        assert len(manager.pending_timers) == 1

        await manager.request_connect()
        await asyncio.sleep(0.15)

        assert manager.pending_timers == []
        assert len(factory.sessions) == 2
        assert factory.live == [factory.current]
        await manager.close()

    @pytest.mark.asyncio
    async def test_connect_while_timer_connect_in_flight(self, manager, factory):
        factory.close_delay = 0.1
        first = await make_ready(manager, factory)
        first.emit("close", CloseReason.BROWSER_CLOSED)

        # The reconnect timer has fired and is still closing the old session
        await asyncio.sleep(0.08)
        await manager.request_connect()

        assert first.closed is True
        assert factory.live == [factory.current]
        assert manager.pending_timers == []
        await manager.close()

    @pytest.mark.asyncio
    async def test_retry_timer_does_not_replace_scanned_qr(self, manager, factory):
        factory.construct_error = OSError("profile directory is locked")
        with pytest.raises(TransientIOError):
            await manager.request_connect()

        factory.construct_error = None
        await manager.request_connect()
        factory.current.emit("qr", "2@scan-me")
        await asyncio.sleep(0.15)

        assert len(factory.sessions) == 1
        assert manager.phase is Phase.AWAITING_SCAN
        assert manager.current_qr() == "2@scan-me"
        await manager.close()

    @pytest.mark.asyncio
    async def test_disconnect_waits_for_connect(self, manager, factory):
        factory.close_delay = 0.05
        await manager.request_connect()

        await asyncio.gather(
            manager.request_connect(),
            manager.request_disconnect(reconnect=False),
        )

        assert factory.live == []
        assert manager.phase is Phase.IDLE
        assert manager.get_snapshot().has_session is False
