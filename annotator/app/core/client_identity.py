"""Best-effort caller identity from forwarded-address headers.

The resolved key is a coarse deduplication signal used for rate limiting
and image ownership. It is not a credential: any client can set these
headers.
"""

from typing import Annotated, Optional

from fastapi import Depends, Request

UNKNOWN_CLIENT = "unknown"

FORWARDED_FOR_HEADER = "X-Forwarded-For"
REAL_IP_HEADER = "X-Real-IP"
CONNECTING_IP_HEADER = "CF-Connecting-IP"


def resolve_client_key(
    forwarded_for: Optional[str] = None,
    real_ip: Optional[str] = None,
    connecting_ip: Optional[str] = None,
) -> str:
    """Derive a client key from header values, in precedence order.

    X-Forwarded-For may carry a proxy chain; the first hop is the client.
    No IP syntax validation is performed.

    Examples:
        >>> resolve_client_key(forwarded_for=" 1.2.3.4 , 10.0.0.1")
        '1.2.3.4'
        >>> resolve_client_key()
        'unknown'
    """
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if real_ip:
        return real_ip
    if connecting_ip:
        return connecting_ip
    return UNKNOWN_CLIENT


def get_client_key(request: Request) -> str:
    """FastAPI dependency resolving the caller's key from request headers.

    The key is also stored on ``request.state`` for log context.
    """
    client_key = resolve_client_key(
        forwarded_for=request.headers.get(FORWARDED_FOR_HEADER),
        real_ip=request.headers.get(REAL_IP_HEADER),
        connecting_ip=request.headers.get(CONNECTING_IP_HEADER),
    )
    request.state.client_key = client_key
    return client_key


ClientKeyDep = Annotated[str, Depends(get_client_key)]
