def normalize_nickname(raw: str | None) -> str | None:
    """Telegram usernames are case-insensitive; store them bare and lower-cased.

    Returns ``None`` for empty input so "no nickname" has one representation.
    """
    if raw is None:
        return None
    cleaned = raw.strip().lstrip("@").strip().lower()
    return cleaned or None
