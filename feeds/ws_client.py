"""
Stats Stream WebSocket Client

This module maintains the persistent duplex channel to the upstream stats
stream (/ws/stats). It handles:
- Connection lifecycle as a small state machine (CONNECTING / OPEN / CLOSED)
- Automatic reconnection with exponential backoff and an attempt ceiling
- Message parsing; malformed frames are logged and dropped
- Appending stats frames to the MetricsHistoryBuffer
- Publishing lifecycle and snapshot events on an EventBus

State Machine:
    CONNECTING -> OPEN     channel established; attempt counter reset to 0
    OPEN       -> CLOSED   remote close or transport error
    CONNECTING -> CLOSED   connection attempt failed
    CLOSED     -> CONNECTING
                           reconnect timer fired; armed only while
                           attempt < max_reconnect_attempts, with
                           delay = reconnect_interval_ms * 2 ** attempt

    With the defaults (3000ms, 5 attempts) the delays are
    3000, 6000, 12000, 24000, 48000 ms; after that the client stays CLOSED
    and `last_error` reads "Max reconnection attempts reached".

Inbound Frames:
    {"type": "stats", "data": {...MetricsSnapshot fields...}}
    Other "type" values are ignored.

Usage:
    client = StreamClient()
    events = await client.events.subscribe(StreamClient.TOPIC)
    await client.connect()
    ...
    event = await events.get()   # StreamEvent
    ...
    await client.disconnect()
"""

import aiohttp
import asyncio
import contextlib
import json
from typing import Any, Optional
from pydantic import ValidationError

from core.config import settings, to_ws_url
from core.errors import ChannelClosedError
from core.logging import get_logger, log_websocket_event
from core.schemas import MetricsSnapshot, StreamEvent, StreamState
from services.event_bus import EventBus
from storage.metrics_history import MetricsHistoryBuffer


MAX_ATTEMPTS_MESSAGE = "Max reconnection attempts reached"


class StreamClient:
    """
    Async WebSocket client for the upstream stats stream.

    Attributes:
        url: WebSocket URL of the stats stream
        reconnect_interval_ms: Base delay of the reconnect backoff
        max_reconnect_attempts: Automatic reconnects before giving up
        history: Buffer receiving every parsed snapshot
        events: Event bus receiving StreamEvent objects on topic "stream"
        state: Current StreamState
        last_error: Last connection error, for display; never raised

    Example:
        >>> async with StreamClient() as client:
        ...     await asyncio.sleep(30)
        ...     print(len(client.history), client.state)

    Notes:
        - Errors never escape into consumers; they become state transitions
        - disconnect() cancels a pending reconnect before doing anything else
        - send() never queues; it is a no-op unless the channel is OPEN
    """

    TOPIC = "stream"

    def __init__(
        self,
        url: Optional[str] = None,
        reconnect_interval_ms: Optional[int] = None,
        max_reconnect_attempts: Optional[int] = None,
        history: Optional[MetricsHistoryBuffer] = None,
        events: Optional[EventBus] = None,
        heartbeat: Optional[float] = None,
        connect_timeout: Optional[float] = None,
    ):
        """
        Initialize the stream client.

        Args:
            url: Stream URL (default: settings.ws_stats_url)
            reconnect_interval_ms: Backoff base (default: settings.ws_reconnect_interval_ms)
            max_reconnect_attempts: Attempt ceiling (default: settings.ws_max_reconnect_attempts)
            history: Snapshot buffer (default: a new MetricsHistoryBuffer)
            events: Event bus (default: a new EventBus)
            heartbeat: Ping interval in seconds (default: settings.ws_heartbeat)
            connect_timeout: Handshake timeout in seconds (default: settings.request_timeout)
        """
        self.url = url or settings.ws_stats_url
        self.reconnect_interval_ms = (
            settings.ws_reconnect_interval_ms if reconnect_interval_ms is None else reconnect_interval_ms
        )
        self.max_reconnect_attempts = (
            settings.ws_max_reconnect_attempts if max_reconnect_attempts is None else max_reconnect_attempts
        )
        self.heartbeat = settings.ws_heartbeat if heartbeat is None else heartbeat
        self.connect_timeout = settings.request_timeout if connect_timeout is None else connect_timeout
        self.history = history if history is not None else MetricsHistoryBuffer()
        self.events = events or EventBus()

        # Connection state
        self.session: Optional[aiohttp.ClientSession] = None
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self.state = StreamState.CLOSED
        self.last_error: Optional[str] = None
        self._reconnect_attempt = 0
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._closing = False
        self._stopped = asyncio.Event()

        self.logger = get_logger(__name__)

    # ============================================
    # Context Manager
    # ============================================

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()

    # ============================================
    # Introspection
    # ============================================

    @property
    def is_connected(self) -> bool:
        return self.state == StreamState.OPEN

    @property
    def reconnect_attempt(self) -> int:
        return self._reconnect_attempt

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def reconnect_delay(self, attempt: int) -> int:
        """
        Backoff delay in milliseconds before reconnect number `attempt + 1`.

        Example:
            >>> [StreamClient(reconnect_interval_ms=3000).reconnect_delay(a) for a in range(5)]
            [3000, 6000, 12000, 24000, 48000]
        """
        return self.reconnect_interval_ms * 2 ** attempt

    async def wait_closed(self) -> None:
        """Wait until the client is disconnected or out of reconnect attempts"""
        await self._stopped.wait()

    # ============================================
    # Connection Management
    # ============================================

    async def connect(self) -> None:
        """
        Start the stream. Returns once the first connection attempt is scheduled.

        Notes:
            - Safe to call again after disconnect() or exhaustion
            - A no-op while a connection attempt is already running
        """
        if self._task and not self._task.done():
            return

        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession()

        self._closing = False
        self._stopped.clear()
        self._reconnect_attempt = 0
        self.last_error = None
        self._start_connection()

    async def disconnect(self) -> None:
        """
        Stop the stream and release the channel and session.

        The pending reconnect timer is cancelled before the first await, so no
        automatic reconnection can fire once disconnect() has been called.
        """
        self._closing = True
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self.ws is not None and not self.ws.closed:
            await self.ws.close()
        self.ws = None

        if self.session and not self.session.closed:
            await self.session.close()

        self._set_state(StreamState.CLOSED)
        self._stopped.set()
        log_websocket_event("disconnected", self.url)

    def _start_connection(self) -> None:
        self._set_state(StreamState.CONNECTING)
        self._task = asyncio.get_running_loop().create_task(
            self._run_connection(), name="stats_stream"
        )

    async def _run_connection(self) -> None:
        try:
            await self._open_and_listen()
        except asyncio.CancelledError:
            self._closing = True
            raise
        finally:
            self._handle_close()

    async def _open_and_listen(self) -> None:
        self.logger.info(f"Connecting to {self.url}")
        try:
            self.ws = await asyncio.wait_for(
                self.session.ws_connect(self.url, heartbeat=self.heartbeat),
                timeout=self.connect_timeout
            )
        except asyncio.TimeoutError:
            self.last_error = f"WebSocket connection timed out after {self.connect_timeout}s"
            log_websocket_event("error", self.url, self.last_error)
            return
        except Exception as e:
            self.last_error = f"WebSocket connection error: {e}"
            log_websocket_event("error", self.url, str(e))
            return

        self._reconnect_attempt = 0
        self.last_error = None
        self._set_state(StreamState.OPEN)
        log_websocket_event("connected", self.url)
        self._emit("open")

        try:
            await self._listen(self.ws)
        except ChannelClosedError as e:
            self.last_error = str(e)
            log_websocket_event("closed", self.url, str(e))
        except Exception as e:
            self.last_error = f"WebSocket error: {e}"
            log_websocket_event("error", self.url, str(e))

        if self.ws is not None and not self.ws.closed:
            await self.ws.close()

    async def _listen(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """
        Consume frames until the channel goes away.

        Raises:
            ChannelClosedError: Always, once the channel is closed or errored
        """
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                self.handle_message(msg.data)

            elif msg.type in (aiohttp.WSMsgType.CLOSE, aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                raise ChannelClosedError(f"Channel closed by remote: {msg.data}")

            elif msg.type == aiohttp.WSMsgType.ERROR:
                raise ChannelClosedError(f"Channel error: {msg.data}")

            # Ping/Pong and binary frames
            else:
                self.logger.debug(f"Ignoring frame of type {msg.type}")

        raise ChannelClosedError("Channel closed by remote")

    def _handle_close(self) -> None:
        self._set_state(StreamState.CLOSED)
        self._emit("close", error=self.last_error)

        if self._closing:
            self._stopped.set()
            return

        if self._reconnect_attempt >= self.max_reconnect_attempts:
            self.last_error = MAX_ATTEMPTS_MESSAGE
            self.logger.error(f"{MAX_ATTEMPTS_MESSAGE} ({self.max_reconnect_attempts}) for {self.url}")
            self._emit("exhausted", error=self.last_error)
            self._stopped.set()
            return

        delay_ms = self.reconnect_delay(self._reconnect_attempt)
        self.logger.warning(
            f"Reconnecting in {delay_ms}ms "
            f"(attempt {self._reconnect_attempt + 1}/{self.max_reconnect_attempts})"
        )
        self._emit("reconnect_scheduled", delay_ms=delay_ms, attempt=self._reconnect_attempt + 1)
        self._reconnect_handle = asyncio.get_running_loop().call_later(
            delay_ms / 1000, self._reconnect
        )

    def _reconnect(self) -> None:
        self._reconnect_handle = None
        if self._closing:
            return
        self._reconnect_attempt += 1
        self._start_connection()

    # ============================================
    # Messages
    # ============================================

    def handle_message(self, raw: Any) -> Optional[MetricsSnapshot]:
        """
        Parse one inbound frame.

        Returns:
            The snapshot appended to the history, or None if the frame was
            ignored or dropped
        """
        try:
            payload = json.loads(raw)
        except (TypeError, ValueError) as e:
            self.logger.error(f"Dropping malformed frame: {str(raw)[:100]}... Error: {e}")
            return None

        if not isinstance(payload, dict) or payload.get("type") != "stats":
            kind = payload.get("type") if isinstance(payload, dict) else type(payload).__name__
            self.logger.debug(f"Ignoring frame of type '{kind}'")
            return None

        data = payload.get("data")
        if not isinstance(data, dict):
            self.logger.error("Dropping stats frame without a 'data' object")
            return None

        # Snapshots are stamped with their arrival time
        fields = {k: v for k, v in data.items() if k != "timestamp"}
        try:
            snapshot = MetricsSnapshot.model_validate(fields)
        except ValidationError as e:
            self.logger.error(f"Dropping invalid stats frame: {e}")
            return None

        self.history.append(snapshot)
        self._emit("snapshot", snapshot=snapshot)
        return snapshot

    async def send(self, payload: Any) -> bool:
        """
        Send a JSON message if the channel is OPEN.

        Returns:
            True if sent; False (with a warning) when not connected or the
            channel drops mid-send
        """
        if self.state != StreamState.OPEN or self.ws is None or self.ws.closed:
            self.logger.warning("WebSocket not connected; message not sent")
            return False

        try:
            await self.ws.send_str(json.dumps(payload))
        except (ConnectionResetError, aiohttp.ClientError) as e:
            self.last_error = f"WebSocket send failed: {e}"
            self.logger.warning(self.last_error)
            return False
        return True

    # ============================================
    # Helpers
    # ============================================

    def _set_state(self, state: StreamState) -> None:
        if state != self.state:
            self.logger.debug(f"Stream state {self.state.value} -> {state.value}")
        self.state = state

    def _emit(self, kind: str, **fields: Any) -> None:
        self.events.publish_nowait(self.TOPIC, StreamEvent(kind=kind, state=self.state, **fields))


# ============================================
# Convenience Builders
# ============================================

def create_stats_stream(
    base_url: Optional[str] = None,
    history: Optional[MetricsHistoryBuffer] = None,
    events: Optional[EventBus] = None,
) -> StreamClient:
    """
    Create a StreamClient for the stats channel of an upstream base URL.

    Example:
        >>> create_stats_stream("https://prices.example.com").url
        'wss://prices.example.com/ws/stats'
    """
    url = to_ws_url(base_url) + settings.ws_stats_path if base_url else None
    return StreamClient(url=url, history=history, events=events)
