from __future__ import annotations

_UNSAFE_KEY_CHARS = ("/", "\\", "\x00")


def sanitize_email(email: str) -> str:
    """Turn an email address into a storage key (`a.b@c.d` -> `a_b_at_c_d`).

    Path separators are replaced too, so the key is always a bare file name.
    """
    key = email.replace("@", "_at_").replace(".", "_")
    for char in _UNSAFE_KEY_CHARS:
        key = key.replace(char, "_")
    return key


def is_storable_email(email: str) -> bool:
    return bool(email.strip()) and not any(char in email for char in _UNSAFE_KEY_CHARS)


def trim_text(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars]
