"""
Tests for per-tick sell detection

Run: python -m pytest tests/unit/test_sell_detector.py -v
"""

import asyncio
import time
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from bundle_tracker.clients.ledger_gateway import LedgerGatewayError
from bundle_tracker.core.models import MonitoringSession, SessionHandle, TrackedWallet, WalletRole
from bundle_tracker.services.sell_detector import MonitorConfig, SellDetector
from tests.conftest import NETWORK, TOKEN, UNISWAP_V2, transfer

WALLET = "0x1111111111111111111111111111111111111111"
SECOND = "0x2222222222222222222222222222222222222222"
UNKNOWN_DEST = "0x9999999999999999999999999999999999999999"


def make_session(*wallets, role=WalletRole.BUNDLE) -> MonitoringSession:
    return MonitoringSession(
        handle=SessionHandle(session_id="test", token_address=TOKEN, network=NETWORK),
        token_address=TOKEN,
        network=NETWORK,
        tracked_wallets={w.lower(): TrackedWallet(address=w, role=role) for w in wallets},
    )


@pytest.fixture
def detector(gateway):
    return SellDetector(gateway, MonitorConfig(request_timeout_sec=1))


class TestMonitorConfig:
    def test_from_config_reads_monitoring_section(self):
        config = MonitorConfig.from_config({'monitoring': {'poll_interval_sec': 5, 'min_decrease_pct': 2, 'x': 1}})
        assert config.poll_interval_sec == 5
        assert config.min_decrease_pct == 2
        assert config.max_concurrency == 3

    def test_defaults_without_section(self):
        config = MonitorConfig.from_config({})
        assert config.poll_interval_sec == 30
        assert config.recency_window_sec == 300


class TestSellDetector:
    @pytest.mark.asyncio
    async def test_first_observation_sets_baseline_only(self, gateway, detector):
        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)

        alerts = await detector.run_tick(session)

        assert alerts == []
        tracked = session.tracked_wallets[WALLET]
        assert tracked.last_balance == Decimal(1000)
        assert tracked.last_checked_at is not None

    @pytest.mark.asyncio
    async def test_verified_drop_emits_one_alert(self, gateway, detector):
        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        await detector.run_tick(session)

        gateway.balances[WALLET] = 950
        gateway.transfers[WALLET] = [
            transfer(WALLET, UNKNOWN_DEST, "10", age_sec=120, tx_hash="0xolder"),
            transfer(WALLET, UNISWAP_V2, "50", age_sec=10, tx_hash="0xabc"),
        ]

        alerts = await detector.run_tick(session)

        assert len(alerts) == 1
        alert = alerts[0]
        assert alert.wallet_address == WALLET
        assert alert.wallet_role == WalletRole.BUNDLE
        assert alert.amount_sold == Decimal(50)
        assert alert.previous_balance == Decimal(1000)
        assert alert.new_balance == Decimal(950)
        assert alert.change_percentage == pytest.approx(5.0)
        assert alert.tx_hash == "0xabc"
        assert alert.counterparty_venue == "Uniswap V2"
        assert alert.explorer_link == "https://etherscan.io/tx/0xabc"
        assert alert.usd_value is None
        assert session.tracked_wallets[WALLET].last_balance == Decimal(950)

    @pytest.mark.asyncio
    async def test_unresolved_drop_updates_balance_without_alert(self, gateway, detector):
        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        await detector.run_tick(session)

        gateway.balances[WALLET] = 950
        # Outside the recency window
        gateway.transfers[WALLET] = [transfer(WALLET, UNISWAP_V2, "50", age_sec=600)]

        alerts = await detector.run_tick(session)

        assert alerts == []
        assert session.tracked_wallets[WALLET].last_balance == Decimal(950)

    @pytest.mark.asyncio
    async def test_incoming_transfer_does_not_verify_a_drop(self, gateway, detector):
        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        await detector.run_tick(session)

        gateway.balances[WALLET] = 900
        gateway.transfers[WALLET] = [transfer(UNISWAP_V2, WALLET, "100", age_sec=5)]

        assert await detector.run_tick(session) == []

    @pytest.mark.asyncio
    async def test_unknown_destination_venue(self, gateway, detector):
        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        await detector.run_tick(session)

        gateway.balances[WALLET] = 500
        gateway.transfers[WALLET] = [transfer(WALLET, UNKNOWN_DEST, "500", age_sec=1)]

        alerts = await detector.run_tick(session)

        assert alerts[0].counterparty_venue == "Unknown"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("new_balance", [1000, 1200])
    async def test_no_alert_without_decrease(self, gateway, detector, new_balance):
        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        await detector.run_tick(session)

        gateway.balances[WALLET] = new_balance
        gateway.transfers[WALLET] = [transfer(WALLET, UNISWAP_V2, "50", age_sec=1)]

        assert await detector.run_tick(session) == []
        assert session.tracked_wallets[WALLET].last_balance == Decimal(new_balance)

    @pytest.mark.asyncio
    async def test_drop_below_minimum_is_ignored(self, gateway, detector):
        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        await detector.run_tick(session)

        gateway.balances[WALLET] = 995
        gateway.transfers[WALLET] = [transfer(WALLET, UNISWAP_V2, "5", age_sec=1)]

        assert await detector.run_tick(session) == []
        assert session.tracked_wallets[WALLET].last_balance == Decimal(995)

    @pytest.mark.asyncio
    async def test_failed_check_leaves_state_and_other_wallets_continue(self, gateway, detector):
        gateway.balances[WALLET] = 1000
        gateway.balances[SECOND] = 200
        session = make_session(WALLET, SECOND)
        await detector.run_tick(session)
        checked_at = session.tracked_wallets[WALLET].last_checked_at

        gateway.balances[WALLET] = LedgerGatewayError("explorer down")
        gateway.balances[SECOND] = 100
        gateway.transfers[SECOND] = [transfer(SECOND, UNISWAP_V2, "100", age_sec=1)]

        alerts = await detector.run_tick(session)

        assert [a.wallet_address for a in alerts] == [SECOND]
        assert session.tracked_wallets[WALLET].last_balance == Decimal(1000)
        assert session.tracked_wallets[WALLET].last_checked_at == checked_at

    @pytest.mark.asyncio
    async def test_failed_transfer_lookup_keeps_previous_balance(self, gateway, detector):
        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        await detector.run_tick(session)

        gateway.balances[WALLET] = 900
        gateway.transfers[WALLET] = LedgerGatewayError("rate limited")

        assert await detector.run_tick(session) == []
        assert session.tracked_wallets[WALLET].last_balance == Decimal(1000)

    @pytest.mark.asyncio
    async def test_inactive_session_is_not_touched(self, gateway, detector):
        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        session.active = False

        assert await detector.run_tick(session) == []
        assert gateway.balance_calls == []
        assert session.tracked_wallets[WALLET].last_balance is None

    @pytest.mark.asyncio
    async def test_stop_during_fetch_discards_result(self, gateway, detector):
        session = make_session(WALLET)

        async def balance_then_stop(*args, **kwargs):
            session.active = False
            return Decimal(1000)

        gateway.get_balance = balance_then_stop

        assert await detector.run_tick(session) == []
        assert session.tracked_wallets[WALLET].last_balance is None

    @pytest.mark.asyncio
    async def test_usd_value_from_price_client(self, gateway):
        price_client = AsyncMock()
        price_client.get_token_price.return_value = 2.0
        detector = SellDetector(gateway, MonitorConfig(request_timeout_sec=1), price_client)

        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        await detector.run_tick(session)
        gateway.balances[WALLET] = 950
        gateway.transfers[WALLET] = [transfer(WALLET, UNISWAP_V2, "50", age_sec=1)]

        alerts = await detector.run_tick(session)

        assert alerts[0].usd_value == pytest.approx(100.0)

    @pytest.mark.asyncio
    async def test_price_failure_leaves_usd_empty(self, gateway):
        price_client = AsyncMock()
        price_client.get_token_price.side_effect = RuntimeError("no pairs")
        detector = SellDetector(gateway, MonitorConfig(request_timeout_sec=1), price_client)

        gateway.balances[WALLET] = 1000
        session = make_session(WALLET)
        await detector.run_tick(session)
        gateway.balances[WALLET] = 950
        gateway.transfers[WALLET] = [transfer(WALLET, UNISWAP_V2, "50", age_sec=1)]

        alerts = await detector.run_tick(session)

        assert len(alerts) == 1
        assert alerts[0].usd_value is None

    @pytest.mark.asyncio
    async def test_fan_out_is_bounded(self, gateway):
        wallets = [f"0x{i:040x}" for i in range(1, 11)]
        in_flight = 0
        peak = 0

        async def slow_balance(*args, **kwargs):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return Decimal(1)

        gateway.get_balance = slow_balance
        detector = SellDetector(gateway, MonitorConfig(max_concurrency=3, request_timeout_sec=1))

        await detector.run_tick(make_session(*wallets))

        assert peak <= 3


class TestFindRecentOutgoing:
    def test_picks_latest_outgoing_inside_window(self):
        now = time.time()
        transfers = [
            transfer(WALLET, UNISWAP_V2, "1", age_sec=200, tx_hash="0xold"),
            transfer(WALLET.upper().replace("0X", "0x"), UNISWAP_V2, "1", age_sec=20, tx_hash="0xnew"),
            transfer(UNISWAP_V2, WALLET, "1", age_sec=1, tx_hash="0xincoming"),
            transfer(WALLET, UNISWAP_V2, "1", age_sec=900, tx_hash="0xstale"),
        ]

        found = SellDetector.find_recent_outgoing(transfers, WALLET, now - 300)

        assert found.tx_hash == "0xnew"

    def test_none_when_window_empty(self):
        transfers = [transfer(WALLET, UNISWAP_V2, "1", age_sec=900)]
        assert SellDetector.find_recent_outgoing(transfers, WALLET, time.time() - 300) is None
