from typing import Optional
from fastapi import Request


def _parse_forwarded_for(header_value: str) -> Optional[str]:
    """
    Parse RFC 7239 Forwarded header to extract the client address.
    Example: Forwarded: for=192.0.2.60;proto=https;host=example.com
    """
    first = header_value.split(",")[0]
    for part in first.split(";"):
        if "=" in part:
            k, v = part.split("=", 1)
            if k.strip().lower() == "for":
                return v.strip().strip('"') or None
    return None


def get_client_ip(request: Request) -> str:
    """
    Get the client address for an incoming request.
    Priority:
    1) Forwarded header (for=)
    2) X-Forwarded-For, first hop
    3) X-Real-IP
    4) socket peer address (last resort)
    """
    forwarded = request.headers.get("forwarded")
    if forwarded:
        client = _parse_forwarded_for(forwarded)
        if client:
            return client

    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        client = forwarded_for.split(",")[0].strip()
        if client:
            return client

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else "unknown"
