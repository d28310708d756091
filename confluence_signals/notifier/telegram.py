from __future__ import annotations

import aiohttp
from typing import Any, Dict, List, Optional
import logging

log = logging.getLogger("telegram")

API_BASE = "https://api.telegram.org"


def _clean_ids(ids: Optional[List[Any]]) -> List[str]:
    return [str(x).strip() for x in (ids or []) if str(x).strip()]


class TelegramNotifier:
    def __init__(self, token: str, chat_ids: List[str], *, disable_web_page_preview: bool = True):
        self.token = (token or "").strip()
        self.chat_ids = _clean_ids(chat_ids)
        self.disable_web_page_preview = disable_web_page_preview

    def enabled(self) -> bool:
        return bool(self.token) and bool(self.chat_ids)

    def _payload(self, chat_id: str, text: str, parse_mode: Optional[str]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "chat_id": chat_id,
            "text": text,
            "disable_web_page_preview": self.disable_web_page_preview,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode
        return payload

    async def _post(self, sess: aiohttp.ClientSession, payload: Dict[str, Any]) -> bool:
        url = f"{API_BASE}/bot{self.token}/sendMessage"
        try:
            async with sess.post(url, json=payload) as resp:
                if resp.status == 200:
                    return True
                body = await resp.text()
                log.warning("telegram_send_failed chat_id=%s status=%s body=%s", payload["chat_id"], resp.status, body[:2000])
        except Exception as e:
            log.exception("telegram_send_exception chat_id=%s err=%s", payload["chat_id"], e)
        return False

    async def send(self, text: str, chat_ids: Optional[List[str]] = None, parse_mode: Optional[str] = None) -> int:
        """Deliver ``text`` to every chat; returns how many accepted it. Never raises."""
        targets = _clean_ids(chat_ids) or self.chat_ids
        if not self.token or not targets:
            return 0
        delivered = 0
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=15)) as sess:
                for chat_id in targets:
                    if await self._post(sess, self._payload(chat_id, text, parse_mode)):
                        delivered += 1
        except Exception as e:
            log.exception("telegram_session_exception err=%s", e)
        if delivered < len(targets):
            log.info("telegram_partial_delivery delivered=%d targets=%d", delivered, len(targets))
        return delivered
