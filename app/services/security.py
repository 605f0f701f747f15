import bleach


def sanitize_text(text: str | None) -> str | None:
    """Strip markup from user-supplied display text (names, labels)."""
    if text is None:
        return None
    return bleach.clean(text, tags=[], attributes={}, strip=True)


def mask_sensitive(value: str, visible: int = 4) -> str:
    if not value:
        return value
    if len(value) <= visible:
        return "*" * len(value)
    return f"{value[:visible]}***"


def mask_email(email: str) -> str:
    if not email:
        return email
    if "@" not in email:
        return mask_sensitive(email)
    local, _, domain = email.partition("@")
    if not local or not domain:
        return mask_sensitive(email)
    masked_local = f"{local[0]}***"
    return f"{masked_local}@{domain}"
