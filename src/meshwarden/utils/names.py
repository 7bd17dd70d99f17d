"""Kubernetes-safe object names."""

import hashlib

MAX_NAME_LENGTH = 63


def safe_concat_name(*parts: str) -> str:
    """
    Join name parts with dashes, keeping the result a valid object name.

    Names of 64 characters or more are cut and suffixed with a short sha256
    digest of the full name, so the same parts always give the same name.
    """
    full = "-".join(parts)
    if len(full) <= MAX_NAME_LENGTH:
        return full

    digest = hashlib.sha256(full.encode()).hexdigest()
    # The cut may land on a character that cannot end a name segment
    last = full[56]
    if last.isascii() and last.isalnum() and not last.isupper():
        return f"{full[:57]}-{digest[:5]}"
    return f"{full[:56]}-{digest[:6]}"
