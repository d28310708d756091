from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, List, Optional, Sequence

import aiohttp

from ..models import Candle

log = logging.getLogger("binance")


def _rest_base(market: str) -> str:
    return "https://fapi.binance.com" if market == "futures" else "https://api.binance.com"


def _klines_path(market: str) -> str:
    return "/fapi/v1/klines" if market == "futures" else "/api/v3/klines"


def parse_klines(rows: Sequence[Sequence[Any]], now_ms: Optional[int] = None) -> List[Candle]:
    """REST kline rows -> ascending closed candles.

    Row layout: [0]=open time, [1..5]=OHLCV, [6]=close time. A kline whose close
    time is still in the future is forming and gets dropped.
    """
    now_ms = int(time.time() * 1000) if now_ms is None else int(now_ms)
    out: List[Candle] = []
    for row in rows:
        if int(row[6]) >= now_ms:
            continue
        out.append(Candle(
            time=int(row[0]),
            open=float(row[1]),
            high=float(row[2]),
            low=float(row[3]),
            close=float(row[4]),
            volume=float(row[5]),
        ))
    out.sort(key=lambda c: c.time)
    return out


class BinanceProvider:
    """REST candle source with a shared session and bounded retry."""

    def __init__(
        self,
        market: str = "futures",
        *,
        rest_timeout_s: int = 20,
        rest_max_retries: int = 4,
        rest_backoff_s: float = 0.8,
        rest_conn_limit: int = 40,
        rest_conn_limit_per_host: int = 10,
    ):
        self.market = market
        self.rest_timeout_s = rest_timeout_s

        # REST robustness
        self.rest_max_retries = rest_max_retries
        self.rest_backoff_s = rest_backoff_s
        self.rest_conn_limit = rest_conn_limit
        self.rest_conn_limit_per_host = rest_conn_limit_per_host

        self._session: Optional[aiohttp.ClientSession] = None

    async def close(self) -> None:
        """Close the shared aiohttp session (best-effort)."""
        if self._session is not None and not self._session.closed:
            await self._session.close()

    def _timeout(self) -> aiohttp.ClientTimeout:
        return aiohttp.ClientTimeout(
            total=self.rest_timeout_s,
            connect=min(10, self.rest_timeout_s),
            sock_connect=min(10, self.rest_timeout_s),
            sock_read=max(10, int(self.rest_timeout_s * 0.75)),
        )

    def _connector(self) -> aiohttp.TCPConnector:
        return aiohttp.TCPConnector(
            limit=self.rest_conn_limit,
            limit_per_host=self.rest_conn_limit_per_host,
            ttl_dns_cache=300,
            enable_cleanup_closed=True,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout(), connector=self._connector())
        return self._session

    async def _get_json(self, url: str, params: dict, label: str) -> Any:
        """GET with bounded retries. 418/429 honour Retry-After; 5xx and transport errors back off."""
        sess = await self._get_session()
        attempts = max(1, int(self.rest_max_retries))
        backoff = float(self.rest_backoff_s)
        last_err: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            sleep_s = backoff
            try:
                async with sess.get(url, params=params) as resp:
                    if resp.status == 200:
                        # Some proxies return a wrong content-type; be tolerant.
                        return await resp.json(content_type=None)

                    body = (await resp.text())[:300]
                    if resp.status in (418, 429):
                        retry_after = resp.headers.get("Retry-After")
                        if retry_after and retry_after.isdigit():
                            sleep_s = float(retry_after)
                        last_err = RuntimeError(f"rate limited {resp.status}: {body}")
                    elif resp.status >= 500:
                        last_err = RuntimeError(f"server error {resp.status}: {body}")
                    else:
                        # 4xx other than rate limits will not fix itself
                        raise RuntimeError(f"Binance request failed {label}: {resp.status} {body}")
            except (asyncio.TimeoutError, aiohttp.ClientError) as e:
                last_err = e

            if attempt >= attempts:
                break
            log.warning("rest_retry attempt=%d/%d %s sleep=%.1fs err=%s", attempt, attempts, label, sleep_s, last_err)
            await asyncio.sleep(sleep_s)
            backoff = min(backoff * 2.0, 20.0)

        raise RuntimeError(f"Binance request gave up {label} after {attempts} attempts: {last_err}")

    async def fetch_candles(self, symbol: str, timeframe: str, limit: int) -> List[Candle]:
        if limit <= 0:
            return []
        url = _rest_base(self.market) + _klines_path(self.market)
        # One extra row since the forming kline is dropped.
        params = {"symbol": symbol.upper(), "interval": timeframe, "limit": min(int(limit) + 1, 1500)}

        data = await self._get_json(url, params, f"symbol={symbol} tf={timeframe}")
        if not isinstance(data, list):
            raise RuntimeError(f"Binance klines returned unexpected payload for {symbol} {timeframe}")

        candles = parse_klines(data)
        log.debug("klines symbol=%s tf=%s rows=%d closed=%d", symbol, timeframe, len(data), len(candles))
        return candles[-int(limit):]
