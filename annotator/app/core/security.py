import secrets


def generate_share_token() -> str:
    """Generate an unguessable share token (URL-safe, 128 bits)."""
    return secrets.token_urlsafe(16)
