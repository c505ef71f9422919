"""Telegram client for sending notifications."""

import os
from typing import Optional

import httpx
from loguru import logger

API_BASE = "https://api.telegram.org"


def get_credentials() -> tuple:
    """Get (bot_token, chat_id) from environment; either may be None."""
    return os.getenv("TELEGRAM_BOT_TOKEN"), os.getenv("TELEGRAM_CHAT_ID")


async def send_message(
    text: str,
    bot_token: Optional[str] = None,
    chat_id: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> bool:
    """Send an HTML message to a Telegram chat.

    Args:
        text: Message text (Telegram HTML parse mode)
        bot_token: Override bot token
        chat_id: Override chat id
        client: Reuse an existing client (tests pass one with a mock transport)

    Returns:
        True if sent successfully, False otherwise
    """
    env_token, env_chat = get_credentials()
    bot_token = bot_token or env_token
    chat_id = chat_id or env_chat

    if not bot_token or not chat_id:
        logger.warning("Telegram bot token/chat id not configured, skipping notification")
        return False

    url = f"{API_BASE}/bot{bot_token}/sendMessage"
    payload = {
        "chat_id": chat_id,
        "text": text,
        "parse_mode": "HTML",
        "disable_web_page_preview": True,
    }

    try:
        if client is not None:
            response = await client.post(url, json=payload, timeout=10.0)
        else:
            async with httpx.AsyncClient() as owned:
                response = await owned.post(url, json=payload, timeout=10.0)

        if response.status_code == 200:
            logger.info(f"Sent Telegram message to chat {chat_id}")
            return True
        else:
            logger.error(f"Telegram API error: {response.status_code} - {response.text}")
            return False

    except Exception as e:
        logger.error(f"Failed to send Telegram message: {e}")
        return False
