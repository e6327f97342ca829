"""Client IP resolution behind proxies."""

from starlette.requests import Request


def get_client_ip(request: Request) -> str | None:
    """Resolve the originating client IP.

    Order: first X-Forwarded-For entry, X-Real-IP, then the socket peer.

    Args:
        request: Incoming request

    Returns:
        IP string, or None if nothing is available
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client is not None:
        return request.client.host
    return None
