from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import List, Optional

from .models import ENTRY, LONG, EntryMeta, ExitMeta, Signal
from .timeframes import signal_expires_at


def _fmt_ms(ts_ms: int, tz=timezone.utc) -> str:
    dt = datetime.fromtimestamp(ts_ms / 1000.0, tz=timezone.utc).astimezone(tz)
    return dt.strftime("%Y-%m-%d %H:%M")


def _escape_markdown_v2(text: str) -> str:
    specials = r"\_*[]()~`>#+-=|{}.!"
    escaped = []
    for ch in str(text):
        if ch in specials:
            escaped.append("\\" + ch)
        else:
            escaped.append(ch)
    return "".join(escaped)


def _escape_text(text: str, parse_mode: str) -> str:
    if parse_mode == "MARKDOWNV2":
        return _escape_markdown_v2(text)
    return html.escape(str(text), quote=False)


def _bold(text: str, parse_mode: str) -> str:
    escaped = _escape_text(text, parse_mode)
    if parse_mode == "MARKDOWNV2":
        return f"*{escaped}*"
    return f"<b>{escaped}</b>"


def _fmt_price(val: Optional[float]) -> str:
    if val is None:
        return "-"
    return f"{val:g}"


def _fmt_num(val: Optional[float], fmt: str = ".1f") -> str:
    if val is None:
        return "-"
    return format(val, fmt)


def _entry_meta_lines(meta: EntryMeta) -> List[str]:
    lines = [
        f"Volume: {_fmt_num(meta.volume_ratio, '.2f')}x | HVP: {_fmt_num(meta.hvp)} (avg {_fmt_num(meta.hvp_sma)})",
        f"ADX: {_fmt_num(meta.adx)} | +DI: {_fmt_num(meta.plus_di)} | -DI: {_fmt_num(meta.minus_di)}",
        f"Stoch %K/%D: {_fmt_num(meta.stoch_k)} / {_fmt_num(meta.stoch_d)} | ATR: {_fmt_price(meta.atr)}",
        f"EMA: {_fmt_price(meta.ema)} | SMA: {_fmt_price(meta.sma)} | Cross price: {_fmt_price(meta.required_cross_price)}",
    ]
    if meta.confirmations:
        lines.append("Confirmed: " + ", ".join(meta.confirmations))
    return lines


def _exit_meta_lines(signal: Signal, meta: ExitMeta) -> List[str]:
    lines = [f"Entry: {_fmt_price(meta.entry_price)} | Stop: {_fmt_price(meta.trailing_stop)}"]
    if meta.entry_price > 0:
        move = (signal.price - meta.entry_price) / meta.entry_price * 100.0
        if signal.direction != LONG:
            move = -move
        lines.append(f"Move: {move:+.2f}%")
    lines.append(
        f"High since entry: {_fmt_price(meta.highest_close_since_entry)} | "
        f"Low since entry: {_fmt_price(meta.lowest_close_since_entry)}"
    )
    return lines


def format_signal(signal: Signal, cfg, *, issued_ms: Optional[int] = None) -> str:
    """Format an ENTRY or EXIT signal for Telegram (HTML or MarkdownV2)."""
    parse_mode = (getattr(cfg, "parse_mode", "HTML") or "HTML").upper()
    include_meta = getattr(cfg, "include_meta", True)
    pipe = "\\|" if parse_mode == "MARKDOWNV2" else "|"

    lines = [
        f"{_bold(signal.symbol, parse_mode)}  {pipe}  {_bold(signal.timeframe, parse_mode)}",
        _bold(f"{signal.direction} {signal.kind}", parse_mode) + " " + _escape_text(f"({signal.reason})", parse_mode),
        "",
        _escape_text(f"Time (UTC): {_fmt_ms(signal.time)}", parse_mode),
        _escape_text(f"Price: {_fmt_price(signal.price)}", parse_mode),
    ]

    if signal.kind == ENTRY:
        if signal.confidence is not None:
            lines.append(_escape_text(f"Confidence: {signal.confidence} ({signal.grade})", parse_mode))
        if issued_ms is not None:
            lines.append(_escape_text(f"Valid until: {_fmt_ms(signal_expires_at(signal, issued_ms))}", parse_mode))
        if include_meta and isinstance(signal.meta, EntryMeta):
            lines.extend(_escape_text(x, parse_mode) for x in _entry_meta_lines(signal.meta))
    elif include_meta and isinstance(signal.meta, ExitMeta):
        lines.extend(_escape_text(x, parse_mode) for x in _exit_meta_lines(signal, signal.meta))

    footer = (getattr(cfg, "footer", "") or "").strip()
    if footer:
        lines.append("")
        lines.append(_escape_text(footer, parse_mode))

    return "\n".join(lines)
