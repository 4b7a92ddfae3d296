"""
Telegram bot notifier for sell alerts
"""

import asyncio
import html
import logging
from datetime import datetime, timezone

import httpx

from bundle_tracker.core.models import SellAlert


class TelegramNotifier:
    """Sends HTML-formatted alerts through the Telegram Bot API"""

    def __init__(self, bot_token: str, chat_id: str,
                 api_base: str = "https://api.telegram.org"):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base = api_base
        self.logger = logging.getLogger(__name__)
        self._client = httpx.AsyncClient(timeout=10)
        self.enabled = bool(bot_token and chat_id)

        if not self.enabled:
            self.logger.warning("Telegram notifications disabled (bot token or chat id missing)")

    async def send_message(self, text: str, parse_mode: str = "HTML") -> bool:
        if not self.enabled:
            return False

        url = f"{self.api_base}/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": text[:4000],
            "parse_mode": parse_mode,
            "disable_web_page_preview": True,
        }

        for attempt in range(2):
            try:
                resp = await self._client.post(url, json=payload)
                if resp.status_code == 200:
                    return True

                if resp.status_code == 429:
                    retry_after = resp.json().get("parameters", {}).get("retry_after", 1)
                    self.logger.warning(f"Telegram rate limited, waiting {retry_after}s")
                    await asyncio.sleep(float(retry_after))
                    continue

                self.logger.error(f"Telegram API error {resp.status_code}: {resp.text}")
                return False

            except httpx.HTTPError as e:
                self.logger.error(f"Telegram notification failed (attempt {attempt+1}): {e}")

        return False

    def format_sell_alert(self, alert: SellAlert) -> str:
        """HTML message body for a sell alert"""
        when = datetime.fromtimestamp(alert.timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")
        lines = [
            "🚨 <b>WALLET SELL ALERT</b> 🚨",
            "",
            f"💼 <b>Wallet:</b> <code>{html.escape(alert.wallet_address)}</code>",
            f"🏷️ <b>Role:</b> {alert.wallet_role.value}",
            "",
            f"💰 <b>Amount Sold:</b> {alert.amount_sold:,.4f} tokens",
        ]

        if alert.usd_value is not None:
            lines.append(f"💵 <b>USD Value:</b> ${alert.usd_value:,.2f}")

        lines += [
            "",
            "📊 <b>Balance Change:</b>",
            f"   • Previous: {alert.previous_balance:,.4f}",
            f"   • New: {alert.new_balance:,.4f}",
            f"   • Change: -{alert.change_percentage:.2f}%",
            "",
            f"🏪 <b>Venue:</b> {html.escape(alert.counterparty_venue)}",
            f"🌐 <b>Network:</b> {alert.network.upper()}",
        ]

        if alert.tx_hash:
            short_hash = html.escape(alert.tx_hash[:10])
            if alert.explorer_link:
                lines.append(f'🔗 <b>Transaction:</b> <a href="{html.escape(alert.explorer_link)}">{short_hash}...</a>')
            else:
                lines.append(f"🔗 <b>Transaction:</b> <code>{short_hash}...</code>")

        lines += ["", f"⏰ <b>Time:</b> {when}"]
        return "\n".join(lines)

    async def send_sell_alert(self, alert: SellAlert) -> bool:
        return await self.send_message(self.format_sell_alert(alert))

    async def close(self):
        await self._client.aclose()
