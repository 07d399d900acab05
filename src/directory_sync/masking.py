"""Masking of contact fields before they reach log output."""


def mask_email(email: str) -> str:
    """Mask the local part of an email address.

    Short local parts (three characters or fewer) keep their first
    character, longer ones their first three. The domain is kept.
    Values that are not of the form ``local@domain`` are returned as-is.
    """
    parts = email.split('@')
    if len(parts) != 2:
        return email

    local, domain = parts
    if len(local) <= 3:
        return f"{local[:1]}***@{domain}"
    return f"{local[:3]}***@{domain}"


def mask_mobile(mobile: str) -> str:
    """Keep the first three and last four digits of a phone number."""
    if len(mobile) < 7:
        return mobile
    return f"{mobile[:3]}****{mobile[-4:]}"
