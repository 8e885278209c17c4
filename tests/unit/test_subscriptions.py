"""Unit tests for SubscriptionManager and event records"""
import asyncio
from unittest.mock import AsyncMock

import pytest
from solders.keypair import Keypair

from conftest import DEVNET_CONFIG, FakeWebSocket, RejectingWebSocket, wait_until
from solconnect.core.config import Commitment
from solconnect.core.errors import (
    DeadlineExceededError,
    InvalidAddressError,
    InvalidInputError,
    RateLimitedError,
)
from solconnect.monitoring.events import (
    AccountChangeEvent,
    LogsEvent,
    SubscriptionKind,
    build_event,
)
from solconnect.monitoring.subscriptions import SubscriptionManager, SubscriptionState

SLOT_RESULT = {"slot": 10, "parent": 9, "root": 8}


async def no_sleep(_delay):
    return None


@pytest.fixture
def manager_for(fast_settings):
    managers = []

    def build(*sockets):
        connect = AsyncMock(side_effect=list(sockets))
        manager = SubscriptionManager(DEVNET_CONFIG, fast_settings, connect=connect, sleep=no_sleep)
        managers.append(manager)
        return manager, connect

    yield build


class TestSubscribe:

    @pytest.mark.asyncio
    async def test_subscription_becomes_active(self, manager_for, fake_websocket):
        manager, connect = manager_for(fake_websocket)

        subscription = await manager.subscribe("slotChange")

        assert subscription.state is SubscriptionState.ACTIVE
        assert subscription.server_id == 100
        assert fake_websocket.sent[0]["method"] == "slotSubscribe"
        connect.assert_awaited_once_with(DEVNET_CONFIG.ws_endpoint)
        await manager.close()

    @pytest.mark.asyncio
    async def test_logs_subscription_frame(self, manager_for, fake_websocket):
        manager, _ = manager_for(fake_websocket)
        program = str(Keypair().pubkey())

        await manager.subscribe(SubscriptionKind.LOGS, program, commitment="finalized")

        frame = fake_websocket.sent[0]
        assert frame["method"] == "logsSubscribe"
        assert frame["params"] == [{"mentions": [program]}, {"commitment": "finalized"}]
        await manager.close()

    @pytest.mark.asyncio
    async def test_validation_happens_before_connecting(self, manager_for, fake_websocket):
        manager, connect = manager_for(fake_websocket)

        with pytest.raises(InvalidInputError):
            await manager.subscribe("blockChange")
        with pytest.raises(InvalidInputError):
            await manager.subscribe("accountChange")
        with pytest.raises(InvalidAddressError):
            await manager.subscribe("accountChange", "invalid")
        connect.assert_not_called()

    @pytest.mark.asyncio
    async def test_subscribe_error_is_classified(self, manager_for):
        socket = RejectingWebSocket()
        manager, _ = manager_for(socket)

        with pytest.raises(RateLimitedError):
            await manager.subscribe("rootChange")
        assert manager.subscriptions == []

    @pytest.mark.asyncio
    async def test_unacknowledged_subscribe_hits_deadline(self, manager_for):
        class SilentWebSocket(FakeWebSocket):
            async def send(self, frame):
                self.sent.append(frame)

        socket = SilentWebSocket()
        manager, _ = manager_for(socket)

        with pytest.raises(DeadlineExceededError):
            await manager.subscribe("slotChange", timeout=0.05)
        assert manager.subscriptions == []
        assert socket.closed


class TestEvents:

    @pytest.mark.asyncio
    async def test_events_arrive_in_order(self, manager_for, fake_websocket):
        manager, _ = manager_for(fake_websocket)
        subscription = await manager.subscribe("slotChange")

        for slot in (1, 2, 3):
            fake_websocket.notify("slotNotification", subscription.server_id,
                                  {"slot": slot, "parent": slot - 1, "root": 0})

        slots = [(await asyncio.wait_for(subscription.__anext__(), 1)).slot for _ in range(3)]
        assert slots == [1, 2, 3]
        await manager.close()

    @pytest.mark.asyncio
    async def test_callback_receives_events(self, manager_for, fake_websocket):
        manager, _ = manager_for(fake_websocket)
        received = []

        async def on_event(event):
            received.append(event)

        subscription = await manager.subscribe("rootChange", on_event=on_event)
        fake_websocket.notify("rootNotification", subscription.server_id, 42)

        await wait_until(lambda: received)
        assert received[0].root == 42
        assert received[0].subscription_id == subscription.id
        await manager.close()

    @pytest.mark.asyncio
    async def test_notification_for_unknown_subscription_is_dropped(self, manager_for, fake_websocket):
        manager, _ = manager_for(fake_websocket)
        subscription = await manager.subscribe("slotChange")

        fake_websocket.notify("slotNotification", 999, SLOT_RESULT)
        fake_websocket.notify("slotNotification", subscription.server_id, SLOT_RESULT)

        event = await asyncio.wait_for(subscription.__anext__(), 1)
        assert event.slot == 10
        await manager.close()

    @pytest.mark.asyncio
    async def test_non_object_frames_are_ignored(self, manager_for, fake_websocket):
        manager, connect = manager_for(fake_websocket)
        subscription = await manager.subscribe("slotChange")

        fake_websocket.send_raw("[1, 2]")
        fake_websocket.send_raw("null")
        fake_websocket.notify("slotNotification", subscription.server_id, SLOT_RESULT)

        event = await asyncio.wait_for(subscription.__anext__(), 1)
        assert event.slot == 10
        assert connect.await_count == 1
        assert not fake_websocket.closed
        await manager.close()


class TestCancel:

    @pytest.mark.asyncio
    async def test_cancelled_subscription_drops_in_flight_event(self, manager_for, fake_websocket):
        manager, _ = manager_for(fake_websocket)
        slots = await manager.subscribe("slotChange")
        roots = await manager.subscribe("rootChange")

        fake_websocket.notify("slotNotification", slots.server_id, SLOT_RESULT)
        fake_websocket.notify("rootNotification", roots.server_id, 7)
        # the reader handles frames in order, so the slot event is queued by now
        assert (await asyncio.wait_for(roots.__anext__(), 1)).root == 7
        assert slots._queue.qsize() == 1

        await slots.cancel()

        with pytest.raises(StopAsyncIteration):
            await slots.__anext__()
        assert slots.state is SubscriptionState.CANCELLED
        assert fake_websocket.sent[-1]["method"] == "slotUnsubscribe"
        assert fake_websocket.sent[-1]["params"] == [slots.server_id]

        # shared channel stays up for the other subscription
        assert manager.connected
        fake_websocket.notify("rootNotification", roots.server_id, 8)
        assert (await asyncio.wait_for(roots.__anext__(), 1)).root == 8
        await manager.close()

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent_and_closes_channel(self, manager_for, fake_websocket):
        manager, _ = manager_for(fake_websocket)
        subscription = await manager.subscribe("slotChange")

        await subscription.cancel()
        await subscription.cancel()

        assert fake_websocket.sent_methods().count("slotUnsubscribe") == 1
        assert fake_websocket.closed
        assert not manager.connected

    @pytest.mark.asyncio
    async def test_cancel_nowait_from_another_thread(self, manager_for, fake_websocket):
        manager, _ = manager_for(fake_websocket)
        subscription = await manager.subscribe("slotChange")

        await asyncio.to_thread(subscription.cancel_nowait)

        assert subscription.cancelled
        await wait_until(lambda: fake_websocket.closed)
        assert "slotUnsubscribe" in fake_websocket.sent_methods()

    @pytest.mark.asyncio
    async def test_close_cancels_everything(self, manager_for, fake_websocket):
        manager, _ = manager_for(fake_websocket)
        first = await manager.subscribe("slotChange")
        second = await manager.subscribe("rootChange")

        await manager.close()

        assert first.cancelled and second.cancelled
        assert fake_websocket.closed


class TestReconnect:

    @pytest.mark.asyncio
    async def test_resubscribes_after_disconnect(self, manager_for):
        first = FakeWebSocket(first_server_id=100)
        second = FakeWebSocket(first_server_id=500)
        manager, connect = manager_for(first, second)
        subscription = await manager.subscribe("slotChange", commitment=Commitment.PROCESSED)

        first.drop()

        await wait_until(lambda: subscription.server_id == 500)
        assert connect.await_count == 2
        assert second.sent[0]["method"] == "slotSubscribe"
        assert second.sent[0]["params"] == []

        second.notify("slotNotification", 500, SLOT_RESULT)
        assert (await asyncio.wait_for(subscription.__anext__(), 1)).slot == 10
        await manager.close()

    @pytest.mark.asyncio
    async def test_reader_failure_closes_old_socket(self, manager_for):
        first = FakeWebSocket(first_server_id=100)
        second = FakeWebSocket(first_server_id=500)
        manager, connect = manager_for(first, second)
        subscription = await manager.subscribe("slotChange")

        first.fail(RuntimeError("decoder exploded"))

        await wait_until(lambda: subscription.server_id == 500)
        assert first.closed
        assert connect.await_count == 2
        await manager.close()

    @pytest.mark.asyncio
    async def test_rejected_resubscribe_ends_subscription(self, manager_for):
        first = FakeWebSocket(first_server_id=100)
        second = RejectingWebSocket()
        manager, _ = manager_for(first, second)
        subscription = await manager.subscribe("slotChange")

        first.drop()

        await wait_until(lambda: subscription.cancelled)
        with pytest.raises(StopAsyncIteration):
            await asyncio.wait_for(subscription.__anext__(), 1)
        await wait_until(lambda: not manager.subscriptions)
        await wait_until(lambda: second.closed)
        assert not manager.connected


class TestEventRecords:

    def test_account_change_record(self):
        event = build_event(SubscriptionKind.ACCOUNT_CHANGE, 3, "Addr1", {
            "context": {"slot": 77},
            "value": {"lamports": 5, "owner": "Owner1", "executable": False, "rentEpoch": 361, "data": ["", "base64"]},
        })
        assert isinstance(event, AccountChangeEvent)
        record = event.to_dict()
        assert record["event"] == "accountChange"
        assert record["subscriptionId"] == 3
        assert record["address"] == "Addr1"
        assert record["rentEpoch"] == 361
        assert record["slot"] == 77
        assert record["timestamp"].endswith("+00:00")

    def test_program_account_record(self):
        event = build_event(SubscriptionKind.PROGRAM_ACCOUNT_CHANGE, 1, "Prog1", {
            "context": {"slot": 5},
            "value": {"pubkey": "Acct1", "account": {"lamports": 9, "owner": "Prog1"}},
        })
        record = event.to_dict()
        assert record["programId"] == "Prog1"
        assert record["accountId"] == "Acct1"

    def test_logs_record(self):
        event = build_event(SubscriptionKind.LOGS, 2, "Prog1", {
            "context": {"slot": 5},
            "value": {"signature": "sig", "err": None, "logs": ["a", "b"]},
        })
        assert isinstance(event, LogsEvent)
        assert event.logs == ("a", "b")
        assert event.to_dict()["logs"] == ["a", "b"]
