from __future__ import annotations

from datetime import timedelta


def humanize_duration(duration: timedelta) -> str:
    """
    Render a duration as "H hours, M minutes".

    Truncates to whole hours and minutes. The hours segment is omitted
    when zero and so is the minutes segment; a zero duration renders as "".
    """
    total_minutes = int(duration.total_seconds() // 60) if duration > timedelta(0) else 0
    hours, minutes = divmod(total_minutes, 60)

    parts = []
    if hours == 1:
        parts.append("1 hour, ")
    elif hours > 1:
        parts.append(f"{hours} hours, ")

    if minutes == 1:
        parts.append("1 minute")
    elif minutes > 1:
        parts.append(f"{minutes} minutes")

    return "".join(parts)
