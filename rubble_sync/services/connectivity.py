"""
Connectivity signal.

:class:`ConnectivityMonitor` turns the platform's reachability signal into a
tri-state status (connected / disconnected / unknown) plus change callbacks.
It holds no retry logic. :class:`HttpReachabilityProbe` feeds the monitor
from a periodic HTTP probe when no platform signal is available.
"""
import asyncio
import logging
from typing import Callable, List, Optional

import httpx

logger = logging.getLogger(__name__)

ConnectivityCallback = Callable[[Optional[bool]], None]


class ConnectivityMonitor:
    def __init__(self, initial: Optional[bool] = None):
        self._status: Optional[bool] = initial
        self._callbacks: List[ConnectivityCallback] = []

    @property
    def status(self) -> Optional[bool]:
        """True / False, or None when the signal is unknown."""
        return self._status

    def is_connected(self) -> bool:
        return self._status is True

    def on_change(self, callback: ConnectivityCallback) -> Callable[[], None]:
        """Register a callback for status flips; returns an unsubscribe function."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def update(self, connected: Optional[bool]) -> None:
        """Record the latest platform reading and notify on change."""
        if connected == self._status:
            return
        previous, self._status = self._status, connected
        logger.info("Connectivity changed: %s -> %s", _label(previous), _label(connected))
        for callback in list(self._callbacks):
            try:
                callback(connected)
            except Exception as exc:
                logger.error("Connectivity callback %r failed: %s", callback, exc)

    def report_error(self, error: BaseException) -> None:
        """The platform signal failed; treat reachability as unknown."""
        logger.warning("Connectivity signal error, status unknown: %s", error)
        self.update(None)


def _label(status: Optional[bool]) -> str:
    if status is None:
        return "unknown"
    return "online" if status else "offline"


class HttpReachabilityProbe:
    """Periodically probe a URL and feed the result into a monitor.

    Any HTTP response means reachable; a transport error (DNS, refused,
    timeout) means unreachable; anything else leaves the status unknown.
    """

    def __init__(
        self,
        monitor: ConnectivityMonitor,
        url: str,
        interval: float = 15.0,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.monitor = monitor
        self.url = url
        self.interval = interval
        self.timeout = timeout
        self._transport = transport
        self._task: Optional[asyncio.Task] = None

    async def check(self) -> Optional[bool]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                await client.head(self.url)
        except httpx.TransportError as exc:
            logger.debug("Probe of %s failed: %s", self.url, exc)
            self.monitor.update(False)
        except Exception as exc:
            self.monitor.report_error(exc)
        else:
            self.monitor.update(True)
        return self.monitor.status

    async def _run(self) -> None:
        while True:
            await self.check()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._run())
            logger.info("Connectivity probe started (%s every %.0fs)", self.url, self.interval)

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
