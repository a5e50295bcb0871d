"""
Caller IP lookup for the get-public-ip function.

The dashboard shows this address so users can allow-list it on their
database firewall.
"""
from datetime import datetime, timezone
from typing import Mapping, Optional


def resolve_client_ip(headers: Mapping[str, str]) -> str:
    """
    Priority: CF-Connecting-IP (Cloudflare) > X-Forwarded-For > X-Real-IP.

    Only the first (client) entry of X-Forwarded-For is used.
    """
    cf_ip = headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    return "unknown"


def describe_client(headers: Mapping[str, str]) -> dict:
    """Build the data block of the get-public-ip response."""
    forwarded_for: Optional[str] = headers.get("x-forwarded-for")
    real_ip: Optional[str] = headers.get("x-real-ip")
    cf_ip: Optional[str] = headers.get("cf-connecting-ip")
    country = headers.get("cf-ipcountry") or "unknown"

    return {
        "ip": resolve_client_ip(headers),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "userAgent": headers.get("user-agent") or "unknown",
        "country": country,
        "headers": {
            "x-forwarded-for": forwarded_for,
            "x-real-ip": real_ip,
            "cf-connecting-ip": cf_ip,
            "cf-ipcountry": country,
        },
    }
