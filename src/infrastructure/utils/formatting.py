def format_duration_ms(duration_ms: int) -> str:
    """Convert milliseconds to a short duration like '1m 05s' or '320ms'."""
    if duration_ms < 0:
        raise ValueError("duration_ms must be non-negative")

    if duration_ms < 1000:
        return f"{duration_ms}ms"

    seconds = duration_ms / 1000
    if seconds < 60:
        return f"{seconds:.1f}s"

    hours, remainder = divmod(int(seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    return f"{minutes}m {secs:02d}s"
