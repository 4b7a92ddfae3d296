"""
Database module for persisting sell alerts
"""

import aiosqlite
import logging
import os
import time
from typing import Dict, List, Optional

from bundle_tracker.core.models import SellAlert


class AlertStore:
    def __init__(self, db_file: str = "data/alerts.db", tick_interval: float = 30):
        self.db_file = db_file
        self.tick_interval = tick_interval
        self.logger = logging.getLogger(__name__)

    async def initialize(self):
        """Initialize database tables"""
        db_dir = os.path.dirname(self.db_file)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

        async with aiosqlite.connect(self.db_file) as db:
            await db.execute("""
                CREATE TABLE IF NOT EXISTS alerts (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    alert_key TEXT UNIQUE NOT NULL,
                    wallet_address TEXT NOT NULL,
                    wallet_role TEXT NOT NULL,
                    token_address TEXT NOT NULL,
                    network TEXT NOT NULL,
                    amount_sold REAL NOT NULL,
                    previous_balance REAL NOT NULL,
                    new_balance REAL NOT NULL,
                    change_percentage REAL NOT NULL,
                    counterparty_venue TEXT,
                    tx_hash TEXT,
                    usd_value REAL,
                    explorer_link TEXT,
                    timestamp REAL NOT NULL,
                    created_at REAL NOT NULL,
                    acknowledged BOOLEAN DEFAULT FALSE
                )
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_alerts_wallet_address
                ON alerts(wallet_address)
            """)

            await db.execute("""
                CREATE INDEX IF NOT EXISTS idx_alerts_created_at
                ON alerts(created_at DESC)
            """)

            await db.commit()

        self.logger.info(f"Alert store initialized at {self.db_file}")

    async def store_alert(self, alert: SellAlert) -> bool:
        """Insert an alert once; replays of the same key are ignored. Returns True if a row was written."""
        alert_key = alert.storage_key(self.tick_interval)

        async with aiosqlite.connect(self.db_file) as db:
            cursor = await db.execute("""
                INSERT INTO alerts (
                    alert_key, wallet_address, wallet_role, token_address, network,
                    amount_sold, previous_balance, new_balance, change_percentage,
                    counterparty_venue, tx_hash, usd_value, explorer_link,
                    timestamp, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(alert_key) DO NOTHING
            """, (
                alert_key,
                alert.wallet_address.lower(),
                alert.wallet_role.value,
                alert.token_address.lower(),
                alert.network,
                float(alert.amount_sold),
                float(alert.previous_balance),
                float(alert.new_balance),
                alert.change_percentage,
                alert.counterparty_venue,
                alert.tx_hash,
                alert.usd_value,
                alert.explorer_link,
                alert.timestamp,
                time.time(),
            ))
            await db.commit()
            written = cursor.rowcount > 0

        if written:
            self.logger.info(f"Stored alert {alert_key[:18]}... for {alert.wallet_address[:10]}...")
        else:
            self.logger.debug(f"Duplicate alert {alert_key[:18]}... ignored")
        return written

    def _row_to_dict(self, row) -> Dict:
        return {
            'id': row[0],
            'alert_key': row[1],
            'wallet_address': row[2],
            'wallet_role': row[3],
            'token_address': row[4],
            'network': row[5],
            'amount_sold': row[6],
            'previous_balance': row[7],
            'new_balance': row[8],
            'change_percentage': row[9],
            'counterparty_venue': row[10],
            'tx_hash': row[11],
            'usd_value': row[12],
            'explorer_link': row[13],
            'timestamp': row[14],
            'created_at': row[15],
            'acknowledged': bool(row[16]),
        }

    async def get_recent_alerts(self, limit: int = 50, acknowledged: Optional[bool] = None) -> List[Dict]:
        """Most recent alerts, optionally filtered by acknowledgement"""
        async with aiosqlite.connect(self.db_file) as db:
            if acknowledged is None:
                query = "SELECT * FROM alerts ORDER BY created_at DESC LIMIT ?"
                params = (limit,)
            else:
                query = "SELECT * FROM alerts WHERE acknowledged = ? ORDER BY created_at DESC LIMIT ?"
                params = (acknowledged, limit)

            async with db.execute(query, params) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_dict(row) for row in rows]

    async def acknowledge_alert(self, alert_key: str) -> bool:
        async with aiosqlite.connect(self.db_file) as db:
            cursor = await db.execute(
                "UPDATE alerts SET acknowledged = TRUE WHERE alert_key = ?",
                (alert_key,)
            )
            await db.commit()
            return cursor.rowcount > 0

    async def get_wallet_report(self, wallet_address: str) -> Dict:
        """Alert totals for one wallet"""
        async with aiosqlite.connect(self.db_file) as db:
            async with db.execute(
                "SELECT * FROM alerts WHERE wallet_address = ? ORDER BY timestamp DESC",
                (wallet_address.lower(),)
            ) as cursor:
                rows = await cursor.fetchall()

        alerts = [self._row_to_dict(row) for row in rows]
        day_ago = time.time() - 24 * 3600
        total_sold = sum(a['amount_sold'] for a in alerts)

        return {
            'wallet_address': wallet_address.lower(),
            'total_alerts': len(alerts),
            'recent_alerts': len([a for a in alerts if a['created_at'] >= day_ago]),
            'total_sold': total_sold,
            'total_sell_value_usd': sum(a['usd_value'] or 0 for a in alerts),
            'avg_sell_size': total_sold / len(alerts) if alerts else 0,
            'alerts': alerts,
        }
