"""Small text helpers shared by the renderers."""

from __future__ import annotations

from datetime import datetime

# Tried in order after RFC 3339
_DATE_FORMATS = ("%Y-%m-%dT%H:%M", "%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y")
DISPLAY_DATE_FORMAT = "%d %b %Y"


def format_date(value: str) -> str:
    """Render a catalog date as ``12 Jan 2024``; unknown formats come back unchanged."""
    text = value.strip()
    if not text:
        return value
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None
    if parsed is None:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return value
    return parsed.strftime(DISPLAY_DATE_FORMAT)


def truncate(text: str, width: int, ellipsis: str = "…") -> str:
    if width <= 0:
        return ""
    if len(text) <= width:
        return text
    return text[: max(0, width - len(ellipsis))] + ellipsis


def format_count(value: int) -> str:
    """1234567 → ``1,234,567``."""
    return f"{value:,}"


def format_score(value: float) -> str:
    return f"{value:.2f}" if value else "N/A"


def humanize(value: str) -> str:
    """``plan_to_watch`` → ``Plan To Watch``."""
    return value.replace("_", " ").title() if value else ""


__all__ = ["format_count", "format_date", "format_score", "humanize", "truncate"]
