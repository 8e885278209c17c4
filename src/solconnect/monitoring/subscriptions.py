"""
WebSocket subscriptions multiplexed over one connection per client.

A single reader task owns the socket. Control responses are matched to their
requests by JSON-RPC id, and the server subscription id is bound to its
Subscription right there in the reader, so a notification can never arrive
for a subscription that is not yet registered. Notifications are routed by
server subscription id.

Registration, cancellation and dispatch share one asyncio.Lock. Cancelled
state is flipped synchronously under a threading.Lock and the event stream
drops anything still queued once it is set.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import json
import threading
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed

from solconnect.core.address import parse_address
from solconnect.core.config import ClientSettings, Commitment, ConnectionConfig
from solconnect.core.errors import (
    InvalidInputError,
    RPCError,
    SolanaClientError,
    TransientError,
    to_client_error,
)
from solconnect.core.retry import with_deadline
from solconnect.monitoring.events import SubscriptionEvent, SubscriptionKind, build_event
from solconnect.utils.logger import get_logger

logger = get_logger(__name__)

EventCallback = Callable[[SubscriptionEvent], Optional[Awaitable[None]]]
ConnectFn = Callable[[str], Awaitable[Any]]

_CLOSED = object()


class SubscriptionState(Enum):
    CREATED = "created"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class Subscription:
    """
    One live subscription.

    Iterate it with `async for` to receive events, or pass on_event to
    SubscriptionManager.subscribe to have them pushed to a callback instead.
    """

    def __init__(
        self,
        manager: "SubscriptionManager",
        subscription_id: int,
        kind: SubscriptionKind,
        filter_address: str | None,
        commitment: Commitment,
        on_event: EventCallback | None = None,
    ):
        self.id = subscription_id
        self.kind = kind
        self.filter_address = filter_address
        self.commitment = commitment
        self.server_id: int | None = None
        self._manager = manager
        self._state = SubscriptionState.CREATED
        self._state_lock = threading.Lock()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._loop = asyncio.get_running_loop()
        self._on_event = on_event
        self._pump_task: asyncio.Task | None = None
        if on_event is not None:
            self._pump_task = asyncio.create_task(self._pump())

    def __repr__(self) -> str:
        return (
            f"Subscription(id={self.id}, kind={self.kind.value}, "
            f"address={self.filter_address}, state={self._state.value})"
        )

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def cancelled(self) -> bool:
        return self._state is SubscriptionState.CANCELLED

    def _activate(self, server_id: int) -> None:
        with self._state_lock:
            self.server_id = server_id
            if self._state is SubscriptionState.CREATED:
                self._state = SubscriptionState.ACTIVE

    def _mark_cancelled(self) -> bool:
        """Flip to CANCELLED. Returns False if it already was."""
        with self._state_lock:
            if self._state is SubscriptionState.CANCELLED:
                return False
            self._state = SubscriptionState.CANCELLED
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._queue.put_nowait, _CLOSED)
        return True

    def _enqueue(self, event: SubscriptionEvent) -> None:
        if not self.cancelled:
            self._queue.put_nowait(event)

    async def cancel(self) -> None:
        """Stop receiving events and unsubscribe. Safe to call more than once."""
        if not self._mark_cancelled():
            return
        logger.info(f"[Subscriptions] Cancelling subscription {self.id} ({self.kind.value})")
        await self._manager._unregister(self)

    def cancel_nowait(self) -> None:
        """Cancel from any thread; the unsubscribe frame is sent in the background."""
        if not self._mark_cancelled():
            return
        if not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._manager._unregister_later, self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> SubscriptionEvent:
        if self.cancelled:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED or self.cancelled:
            raise StopAsyncIteration
        return item

    async def _pump(self) -> None:
        async for event in self:
            try:
                result = self._on_event(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(f"[Subscriptions] Callback for subscription {self.id} failed")


class _Pending:
    __slots__ = ("future", "subscription")

    def __init__(self, future: asyncio.Future | None, subscription: Subscription | None):
        self.future = future
        self.subscription = subscription


class SubscriptionManager:
    """Owns the client's WebSocket and every Subscription multiplexed over it."""

    def __init__(
        self,
        config: ConnectionConfig,
        settings: ClientSettings | None = None,
        connect: ConnectFn | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._config = config
        self._settings = settings or ClientSettings()
        self._connect = connect or self._open_websocket
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._subscriptions: dict[int, Subscription] = {}
        self._by_server_id: dict[int, Subscription] = {}
        self._pending: dict[int, _Pending] = {}
        self._subscription_ids = itertools.count(1)
        self._request_ids = itertools.count(1)
        self._websocket = None
        self._reader_task: asyncio.Task | None = None
        self._background: set[asyncio.Task] = set()
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._websocket is not None

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions.values())

    async def _open_websocket(self, url: str):
        return await websockets.connect(
            url,
            ping_interval=self._settings.ws_ping_interval,
            ping_timeout=self._settings.ws_ping_timeout,
            close_timeout=10,
        )

    async def subscribe(
        self,
        kind: SubscriptionKind | str,
        address: str | None = None,
        commitment: Commitment | str | None = None,
        on_event: EventCallback | None = None,
        timeout: float | None = None,
    ) -> Subscription:
        """Open a subscription and wait for the node to acknowledge it.

        Args:
            kind: accountChange, programAccountChange, slotChange, rootChange or logs
            address: Account or program address; required for account, program and logs
            commitment: Defaults to the connection's commitment
            on_event: Optional callback (sync or async) receiving each event
            timeout: Deadline in seconds for connecting and the acknowledgement;
                settings.request_timeout when omitted

        Raises:
            InvalidInputError: Unknown kind or missing address
            InvalidAddressError: Malformed address
            DeadlineExceededError: No acknowledgement within the deadline
            SolanaClientError: Connection or subscribe failure
        """
        if self._closed:
            raise InvalidInputError("Subscription manager is closed")
        try:
            kind = SubscriptionKind(kind)
        except ValueError as e:
            raise InvalidInputError(f"Unknown subscription kind: {kind!r}") from e

        filter_address = None
        if kind.requires_address:
            if address is None:
                raise InvalidInputError(f"{kind.value} subscriptions require an address")
            filter_address = str(parse_address(address))
        level = self._config.commitment if commitment is None else Commitment.parse(commitment)
        deadline = self._settings.request_timeout if timeout is None else timeout

        async with self._lock:
            await self._ensure_channel(deadline)
            subscription = Subscription(
                self, next(self._subscription_ids), kind, filter_address, level, on_event
            )
            self._subscriptions[subscription.id] = subscription
            future = asyncio.get_running_loop().create_future()
            try:
                await self._send_subscribe(subscription, future)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._subscriptions.pop(subscription.id, None)
                subscription._mark_cancelled()
                raise to_client_error(e) from e

        try:
            server_id = await with_deadline(future, deadline, kind.subscribe_method)
        except (asyncio.CancelledError, Exception):
            await subscription.cancel()
            raise

        logger.info(
            f"[Subscriptions] {kind.value} subscription {subscription.id} active "
            f"(server id {server_id})"
        )
        return subscription

    async def close(self) -> None:
        """Cancel every subscription and close the WebSocket."""
        self._closed = True
        async with self._lock:
            for subscription in list(self._subscriptions.values()):
                subscription._mark_cancelled()
            self._subscriptions.clear()
            self._by_server_id.clear()
            await self._teardown()
        for task in list(self._background):
            task.cancel()

    async def _ensure_channel(self, timeout: float | None) -> None:
        if self._websocket is not None:
            return
        if self._reader_task is not None and not self._reader_task.done():
            raise TransientError("WebSocket is reconnecting")
        logger.info(f"[Subscriptions] Connecting to {self._config.ws_endpoint}")
        try:
            self._websocket = await with_deadline(
                self._connect(self._config.ws_endpoint), timeout, "WebSocket connect"
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise to_client_error(e) from e
        self._reader_task = asyncio.create_task(self._read_loop())

    async def _send(self, method: str, params: list[Any]) -> int:
        request_id = next(self._request_ids)
        frame = json.dumps({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
        await self._websocket.send(frame)
        return request_id

    def _subscribe_params(self, subscription: Subscription) -> list[Any]:
        options = {"commitment": subscription.commitment.value}
        kind = subscription.kind
        if kind is SubscriptionKind.ACCOUNT_CHANGE or kind is SubscriptionKind.PROGRAM_ACCOUNT_CHANGE:
            return [subscription.filter_address, {**options, "encoding": "base64"}]
        if kind is SubscriptionKind.LOGS:
            return [{"mentions": [subscription.filter_address]}, options]
        return []

    async def _send_subscribe(self, subscription: Subscription, future: asyncio.Future | None) -> None:
        # The request id is registered before the frame goes out so the
        # reader can always match the response.
        request_id = next(self._request_ids)
        self._pending[request_id] = _Pending(future, subscription)
        frame = json.dumps({
            "jsonrpc": "2.0",
            "id": request_id,
            "method": subscription.kind.subscribe_method,
            "params": self._subscribe_params(subscription),
        })
        try:
            await self._websocket.send(frame)
        except (asyncio.CancelledError, Exception):
            self._pending.pop(request_id, None)
            raise

    def _unregister_later(self, subscription: Subscription) -> None:
        task = asyncio.ensure_future(self._unregister(subscription))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _unregister(self, subscription: Subscription) -> None:
        async with self._lock:
            if self._subscriptions.pop(subscription.id, None) is None:
                return
            server_id = subscription.server_id
            if server_id is not None and self._by_server_id.get(server_id) is subscription:
                del self._by_server_id[server_id]
                await self._unsubscribe(subscription.kind, server_id)
            if not self._subscriptions:
                await self._teardown()

    async def _unsubscribe(self, kind: SubscriptionKind, server_id: int) -> None:
        if self._websocket is None:
            return
        try:
            await self._send(kind.unsubscribe_method, [server_id])
        except ConnectionClosed as e:
            logger.warning(f"[Subscriptions] Could not unsubscribe {server_id}, socket closed: {e}")

    async def _teardown(self) -> None:
        reader, self._reader_task = self._reader_task, None
        websocket, self._websocket = self._websocket, None
        self._fail_pending(TransientError("WebSocket channel closed"))

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        if websocket is not None:
            await websocket.close()
            logger.info("[Subscriptions] WebSocket closed, no subscriptions left")

    def _fail_pending(self, error: SolanaClientError) -> None:
        pending, self._pending = self._pending, {}
        for entry in pending.values():
            if entry.future is not None and not entry.future.done():
                entry.future.set_exception(error)

    async def _read_loop(self) -> None:
        while True:
            websocket = self._websocket
            if websocket is None:
                return
            try:
                async for raw in websocket:
                    await self._handle_message(raw)
                logger.warning("[Subscriptions] WebSocket closed by server")
            except asyncio.CancelledError:
                raise
            except ConnectionClosed as e:
                logger.warning(f"[Subscriptions] WebSocket connection lost: {e}")
            except Exception:
                logger.exception("[Subscriptions] Reader failed")
                self._websocket = None
                await self._close_stale(websocket)

            if not await self._reconnect():
                return

    async def _close_stale(self, websocket) -> None:
        """Close a socket the reader gave up on while it may still be open."""
        try:
            await websocket.close()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[Subscriptions] Closing stale WebSocket failed: {e}")

    async def _reconnect(self) -> bool:
        """Reopen the socket and re-register active subscriptions."""
        self._websocket = None
        self._fail_pending(TransientError("WebSocket connection lost"))
        failures = 0

        while not self._closed and self._subscriptions:
            delay = min(
                self._settings.ws_reconnect_base_delay * (2 ** failures),
                self._settings.ws_reconnect_max_delay,
            )
            logger.info(f"[Subscriptions] Reconnecting in {delay}s...")
            await self._sleep(delay)
            try:
                websocket = await self._connect(self._config.ws_endpoint)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failures += 1
                logger.warning(f"[Subscriptions] Reconnect attempt {failures} failed: {e}")
                continue

            async with self._lock:
                if not self._subscriptions:
                    await websocket.close()
                    return False
                self._websocket = websocket
                self._by_server_id.clear()
                for subscription in self._subscriptions.values():
                    await self._send_subscribe(subscription, None)
            logger.info(f"[Subscriptions] Reconnected, re-registered {len(self._subscriptions)} subscriptions")
            return True

        return False

    async def _handle_message(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning(f"[Subscriptions] Ignoring non-JSON frame: {raw!r:.200}")
            return
        if not isinstance(message, dict):
            logger.warning(f"[Subscriptions] Ignoring non-object frame: {raw!r:.200}")
            return

        if "id" in message and ("result" in message or "error" in message):
            self._resolve(message)
            return

        method = message.get("method", "")
        if not method.endswith("Notification"):
            logger.debug(f"[Subscriptions] Ignoring frame: {message}")
            return
        await self._dispatch(method, message.get("params") or {})

    def _resolve(self, message: dict[str, Any]) -> None:
        entry = self._pending.pop(message["id"], None)
        if entry is None:
            # unsubscribe acknowledgements
            logger.debug(f"[Subscriptions] Response for request {message['id']}: {message.get('result')}")
            return

        subscription = entry.subscription
        if "error" in message and message["error"]:
            error = message["error"]
            if isinstance(error, dict):
                raw = RPCError(error.get("code"), error.get("message", "Subscribe failed"), error.get("data"))
            else:
                raw = RPCError(None, str(error))
            failure = to_client_error(raw)
            logger.error(f"[Subscriptions] Subscribe failed for {subscription}: {failure}")
            if entry.future is None:
                # Re-registration after a reconnect; nobody is waiting on it
                if subscription._mark_cancelled():
                    self._unregister_later(subscription)
            elif not entry.future.done():
                entry.future.set_exception(failure)
            return

        server_id = message["result"]
        if subscription.cancelled:
            # Cancelled while the subscribe request was in flight
            task = asyncio.ensure_future(self._unsubscribe(subscription.kind, server_id))
            self._background.add(task)
            task.add_done_callback(self._background.discard)
        else:
            subscription._activate(server_id)
            self._by_server_id[server_id] = subscription
        if entry.future is not None and not entry.future.done():
            entry.future.set_result(server_id)

    async def _dispatch(self, method: str, params: dict[str, Any]) -> None:
        server_id = params.get("subscription")
        async with self._lock:
            subscription = self._by_server_id.get(server_id)
            if subscription is None or subscription.cancelled:
                return
            if subscription.kind.notification_method != method:
                logger.warning(f"[Subscriptions] {method} for {subscription.kind.value} subscription {subscription.id}")
                return
            try:
                event = build_event(subscription.kind, subscription.id, subscription.filter_address, params["result"])
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"[Subscriptions] Malformed {method} payload: {e}")
                return
            subscription._enqueue(event)
