"""
Tests for alert fan-out

Run: python -m pytest tests/unit/test_alert_dispatcher.py -v
"""

import time
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from bundle_tracker.core.models import SellAlert, WalletRole
from bundle_tracker.services.alert_dispatcher import AlertDispatcher
from tests.conftest import NETWORK, TOKEN


def make_alert(tx_hash="0xfeed") -> SellAlert:
    return SellAlert(
        wallet_address="0x1111111111111111111111111111111111111111",
        wallet_role=WalletRole.TEAM,
        token_address=TOKEN,
        network=NETWORK,
        amount_sold=Decimal(50),
        previous_balance=Decimal(1000),
        new_balance=Decimal(950),
        change_percentage=5.0,
        counterparty_venue="Uniswap V2",
        tx_hash=tx_hash,
        timestamp=time.time(),
    )


def make_channel(**kwargs):
    channel = MagicMock()
    channel.send_sell_alert = AsyncMock(**kwargs)
    channel.close = AsyncMock()
    return channel


class TestAlertDispatcher:
    @pytest.mark.asyncio
    async def test_every_channel_and_store_receive_alert(self):
        store = MagicMock()
        store.store_alert = AsyncMock(return_value=True)
        channels = [make_channel(return_value=True), make_channel(return_value=True)]
        dispatcher = AlertDispatcher(channels, store=store)
        alert = make_alert()

        await dispatcher.dispatch(alert)

        store.store_alert.assert_awaited_once_with(alert)
        for channel in channels:
            channel.send_sell_alert.assert_awaited_once_with(alert)

    @pytest.mark.asyncio
    async def test_failing_channel_is_isolated(self):
        broken = make_channel(side_effect=RuntimeError("webhook 500"))
        healthy = make_channel(return_value=True)
        store = MagicMock()
        store.store_alert = AsyncMock(side_effect=OSError("disk full"))
        dispatcher = AlertDispatcher([broken, healthy], store=store)

        await dispatcher.dispatch(make_alert())

        healthy.send_sell_alert.assert_awaited_once()
        assert dispatcher.failures == 2
        assert dispatcher.dispatched == 1

    @pytest.mark.asyncio
    async def test_each_subscriber_gets_every_alert(self):
        dispatcher = AlertDispatcher()
        sync_seen, async_seen = [], []

        async def async_listener(alert):
            async_seen.append(alert.tx_hash)

        dispatcher.subscribe(lambda alert: sync_seen.append(alert.tx_hash))
        dispatcher.subscribe(async_listener)

        await dispatcher.dispatch(make_alert("0x1"))
        await dispatcher.dispatch(make_alert("0x2"))

        assert sync_seen == ["0x1", "0x2"]
        assert async_seen == ["0x1", "0x2"]

    @pytest.mark.asyncio
    async def test_subscriber_error_does_not_block_others(self):
        dispatcher = AlertDispatcher()
        seen = []

        def bad_listener(alert):
            raise ValueError("listener bug")

        dispatcher.subscribe(bad_listener)
        dispatcher.subscribe(lambda alert: seen.append(alert))

        await dispatcher.dispatch(make_alert())

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self):
        dispatcher = AlertDispatcher()
        seen = []
        unsubscribe = dispatcher.subscribe(seen.append)

        await dispatcher.dispatch(make_alert("0x1"))
        unsubscribe()
        unsubscribe()
        await dispatcher.dispatch(make_alert("0x2"))

        assert [a.tx_hash for a in seen] == ["0x1"]
        assert dispatcher.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_no_targets_is_fine(self):
        dispatcher = AlertDispatcher([None])
        await dispatcher.dispatch(make_alert())
        assert dispatcher.dispatched == 0

    @pytest.mark.asyncio
    async def test_close_closes_channels(self):
        channel = make_channel(return_value=True)
        channel.close.side_effect = RuntimeError("already closed")
        other = make_channel(return_value=True)
        dispatcher = AlertDispatcher([channel, other])

        await dispatcher.close()

        channel.close.assert_awaited_once()
        other.close.assert_awaited_once()
