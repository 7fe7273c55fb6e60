import asyncio

from wa_rest.core.logging import log


class OneShotTimer:
    """Runs an async callback once, ``delay`` seconds after ``start()``.

    The callback runs as its own task on the running loop. Exceptions it
    raises are logged and never propagate to whoever scheduled it.
    """

    def __init__(self, delay, callback, name="timer", on_done=None):
        self.delay = delay
        self.name = name
        self._callback = callback
        self._on_done = on_done
        self._handle = None
        self._task = None
        self.fired = False
        self.cancelled = False

    @property
    def pending(self):
        return self._handle is not None

    def start(self):
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self.delay, self._fire)
        return self

    def cancel(self):
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
            self.cancelled = True
            self._finish()

    def _fire(self):
        self._handle = None
        self.fired = True
        self._task = asyncio.ensure_future(self._run())

    async def _run(self):
        try:
            await self._callback()
        except Exception as e:
            log.error(f"Scheduled task '{self.name}' failed: {e}")
        finally:
            self._finish()

    def _finish(self):
        if self._on_done:
            self._on_done(self)
