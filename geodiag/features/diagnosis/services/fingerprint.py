import hashlib


def _sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def fingerprint_url(url: str) -> str:
    """Cache-key component for the page address (exact string, no normalization)."""
    return _sha256_hex(url)


def fingerprint_content(text: str) -> str:
    """Cache-key component for the page content; any change to the text changes it."""
    return _sha256_hex(text)
