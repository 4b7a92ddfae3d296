"""
Monitoring session lifecycle: one polling task per (token, network) pair
"""

import asyncio
import logging
import time
import uuid
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from bundle_tracker.clients.dexscreener_client import DexScreenerClient
from bundle_tracker.clients.ledger_gateway import LedgerGateway
from bundle_tracker.core.models import (
    MonitoringSession, SessionHandle, TrackedWallet, WalletRole
)
from bundle_tracker.services.alert_dispatcher import AlertCallback, AlertDispatcher
from bundle_tracker.services.sell_detector import MonitorConfig, SellDetector


class MonitoringManager:
    """
    Owns monitoring sessions and their tick tasks.

    Tracked-wallet state lives inside each session and is only touched by
    the session's own tick loop and by start/stop.
    """

    def __init__(self, gateway: LedgerGateway, dispatcher: AlertDispatcher,
                 config: Optional[Dict] = None,
                 price_client: Optional[DexScreenerClient] = None,
                 detector: Optional[SellDetector] = None):
        self.gateway = gateway
        self.dispatcher = dispatcher
        self.config = MonitorConfig.from_config(config or {})
        self.detector = detector or SellDetector(gateway, self.config, price_client)
        self.logger = logging.getLogger(__name__)

        self._sessions: Dict[str, MonitoringSession] = {}
        self._by_key: Dict[Tuple[str, str], str] = {}
        self._key_locks: Dict[Tuple[str, str], asyncio.Lock] = {}

    async def start_monitoring(self, wallets: Iterable, token_address: str, network: str) -> SessionHandle:
        """
        Start watching `wallets` for sells of `token_address`.

        `wallets` holds objects with `address` and `role` (classified wallets).
        Any running session for the same token/network is stopped first.
        """
        handle = SessionHandle(
            session_id=uuid.uuid4().hex,
            token_address=token_address,
            network=network,
        )

        tracked: Dict[str, TrackedWallet] = {}
        for wallet in wallets:
            address = wallet.address
            role = WalletRole(getattr(wallet, 'role', WalletRole.HOLDER))
            tracked.setdefault(address.lower(), TrackedWallet(address=address, role=role))

        # Start and stop for one key are serialised
        async with self._lock_for(handle.key):
            existing_id = self._by_key.get(handle.key)
            if existing_id:
                self.logger.info(f"Replacing existing session for {token_address[:10]}... on {network}")
                await self._stop_session(self._sessions[existing_id].handle)

            session = MonitoringSession(
                handle=handle,
                token_address=token_address,
                network=network,
                tracked_wallets=tracked,
                active=True,
                started_at=time.time(),
            )
            self._sessions[handle.session_id] = session
            self._by_key[handle.key] = handle.session_id
            session.task = asyncio.create_task(self._session_loop(session))

        self.logger.info(f"👀 Monitoring {len(tracked)} wallets for {token_address[:10]}... on {network} "
                         f"(every {self.config.poll_interval_sec}s)")
        return handle

    async def stop_monitoring(self, handle: Optional[SessionHandle]):
        """Stop a session; unknown or already stopped handles are ignored"""
        if handle is None:
            return

        async with self._lock_for(handle.key):
            await self._stop_session(handle)

    def _lock_for(self, key: Tuple[str, str]) -> asyncio.Lock:
        return self._key_locks.setdefault(key, asyncio.Lock())

    async def _stop_session(self, handle: SessionHandle):
        session = self._sessions.pop(handle.session_id, None)
        if session is None:
            self.logger.debug(f"No active session {handle.session_id[:8]}, nothing to stop")
            return

        if self._by_key.get(handle.key) == handle.session_id:
            del self._by_key[handle.key]

        session.active = False
        task = session.task
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        session.tracked_wallets.clear()
        self.logger.info(f"⏹️ Stopped monitoring {session.token_address[:10]}... on {session.network} "
                         f"after {session.tick_count} ticks, {session.alert_count} alerts")

    async def stop_all(self):
        for session in list(self._sessions.values()):
            await self.stop_monitoring(session.handle)

    def subscribe(self, callback: AlertCallback) -> Callable[[], None]:
        """Register an alert listener; returns its unsubscribe function"""
        return self.dispatcher.subscribe(callback)

    def get_session(self, handle: SessionHandle) -> Optional[MonitoringSession]:
        return self._sessions.get(handle.session_id)

    def active_sessions(self) -> List[MonitoringSession]:
        return [s for s in self._sessions.values() if s.active]

    def get_status(self) -> Dict:
        sessions = self.active_sessions()
        return {
            'is_monitoring': bool(sessions),
            'active_sessions': len(sessions),
            'tracked_wallets': sum(len(s.tracked_wallets) for s in sessions),
            'subscribers': self.dispatcher.subscriber_count,
            'poll_interval_sec': self.config.poll_interval_sec,
            'sessions': [s.status() for s in sessions],
        }

    async def _session_loop(self, session: MonitoringSession):
        """Tick immediately, then every poll interval until stopped"""
        try:
            while session.active:
                await self._tick(session)
                await asyncio.sleep(self.config.poll_interval_sec)
        except asyncio.CancelledError:
            self.logger.debug(f"Session loop {session.handle.session_id[:8]} cancelled")
            raise

    async def _tick(self, session: MonitoringSession):
        try:
            alerts = await self.detector.run_tick(session)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self.logger.error(f"Tick failed for {session.token_address[:10]}...: {e}")
            return

        if not session.active:
            return

        session.tick_count += 1
        session.last_tick_at = time.time()

        for alert in alerts:
            session.alert_count += 1
            await self.dispatcher.dispatch(alert)
