"""
Discord webhook notifier for sell alerts and monitoring status
"""

import asyncio
from typing import Optional, Dict, Any
import httpx
import logging
from datetime import datetime, timezone

from bundle_tracker.core.models import SellAlert, WalletRole


ROLE_COLORS = {
    WalletRole.DEPLOYER: 0xEF4444,  # Red
    WalletRole.TEAM: 0xF97316,      # Orange
    WalletRole.BUNDLE: 0xF59E0B,    # Amber
    WalletRole.MEV: 0x8B5CF6,       # Purple
    WalletRole.HOLDER: 0x3B82F6,    # Blue
}


class DiscordNotifier:
    """Handles Discord notifications via webhooks"""

    def __init__(self, webhook_url: str, username: str = "Wallet Sell Tracker"):
        self.webhook_url = webhook_url
        self.username = username
        self.logger = logging.getLogger(__name__)
        self._client = httpx.AsyncClient(timeout=10)
        self.enabled = bool(webhook_url and webhook_url.strip())

        if not self.enabled:
            self.logger.warning("Discord notifications disabled (webhook URL empty)")
        else:
            self.logger.info(f"Discord notifier initialized with webhook: {webhook_url[:50]}...")

    async def _post(self, payload: Dict[str, Any]) -> bool:
        """Post to Discord webhook with retry logic"""
        if not self.enabled:
            return False

        for attempt in range(3):
            try:
                resp = await self._client.post(self.webhook_url, json=payload)
                if resp.status_code in [200, 204]:
                    return True

                # Handle rate limiting
                if resp.status_code == 429:
                    retry_after = float(resp.headers.get("Retry-After", "1"))
                    self.logger.warning(f"Discord rate limited, waiting {retry_after}s")
                    await asyncio.sleep(retry_after)
                    continue

                # Handle server errors with retry
                if 500 <= resp.status_code < 600:
                    await asyncio.sleep(1 + attempt)
                    continue

                self.logger.error(f"Discord webhook error {resp.status_code}: {resp.text}")
                return False

            except httpx.HTTPError as e:
                self.logger.error(f"Discord notification failed (attempt {attempt+1}): {e}")
                if attempt < 2:
                    await asyncio.sleep(1)

        return False

    async def send_text(self, content: str) -> bool:
        """Send a simple text message"""
        if not self.enabled:
            return False

        # Discord has a 2000 character limit
        return await self._post({
            "username": self.username,
            "content": content[:1900]
        })

    async def send_embed(self,
                         title: str,
                         fields: Dict[str, str],
                         color: int = 0x2b6cb0,
                         description: Optional[str] = None,
                         footer: Optional[str] = None,
                         url: Optional[str] = None) -> bool:
        """Send a rich embed message"""
        if not self.enabled:
            return False

        embed = {
            "title": title[:256],
            "color": color,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "fields": []
        }

        if description:
            embed["description"] = description[:2048]

        if footer:
            embed["footer"] = {"text": footer[:2048]}

        if url:
            embed["url"] = url

        for name, value in fields.items():
            embed["fields"].append({
                "name": str(name)[:256],
                "value": str(value)[:1024],
                "inline": True
            })

        return await self._post({
            "username": self.username,
            "embeds": [embed]
        })

    async def send_sell_alert(self, alert: SellAlert) -> bool:
        """Send a formatted wallet sell alert"""
        fields = {
            "Wallet": f"`{alert.wallet_address}`",
            "Role": alert.wallet_role.value,
            "Amount Sold": f"{alert.amount_sold:,.4f}",
            "Balance": f"{alert.previous_balance:,.4f} → {alert.new_balance:,.4f}",
            "Change": f"-{alert.change_percentage:.2f}%",
            "Venue": alert.counterparty_venue,
            "Network": alert.network.upper(),
        }

        if alert.usd_value is not None:
            fields["USD Value"] = f"${alert.usd_value:,.2f}"

        fields["Transaction"] = f"`{alert.tx_hash[:18]}...`" if alert.tx_hash else "n/a"

        return await self.send_embed(
            title=f"🚨 {alert.wallet_role.value} wallet sold",
            fields=fields,
            color=ROLE_COLORS.get(alert.wallet_role, 0xF59E0B),
            description=f"Token `{alert.token_address}`",
            footer=datetime.fromtimestamp(alert.timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC"),
            url=alert.explorer_link
        )

    async def send_monitoring_status(self, token_address: str, network: str,
                                     wallet_count: int, active: bool) -> bool:
        """Announce a monitoring session starting or stopping"""
        fields = {
            "Token": f"`{token_address}`",
            "Network": network.upper(),
            "Wallets": str(wallet_count),
        }

        return await self.send_embed(
            title="👀 Monitoring started" if active else "⏹️ Monitoring stopped",
            fields=fields,
            color=0x10B981 if active else 0x6B7280
        )

    async def send_error_notification(self,
                                      error_message: str,
                                      context: Optional[Dict[str, Any]] = None) -> bool:
        """Send an error notification"""
        fields = {
            "Error": error_message[:1024]
        }

        if context:
            for key, value in list(context.items())[:5]:  # Limit to 5 context fields
                fields[key] = str(value)[:200]

        return await self.send_embed(
            title="⚠️ Error Detected",
            fields=fields,
            color=0xEF4444
        )

    async def close(self):
        """Close the HTTP client"""
        await self._client.aclose()
