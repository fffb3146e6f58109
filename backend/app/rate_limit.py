"""Request throttling for the GrameenLink backend.

Each route declares its own ``@limiter.limit``. The bucket is the actor
named in ``X-Actor-Id``; anonymous calls (the score endpoint, job reads)
share a bucket per client address. ``X-Forwarded-For`` only counts when
the connection comes from a network listed in ``TRUSTED_PROXY_CIDRS``.
"""

import ipaddress
from functools import lru_cache

from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings
from .logging_config import get_logger

logger = get_logger("grameenlink.rate_limit")


@lru_cache
def parse_networks(cidrs: str) -> tuple:
    """Parse a comma-separated CIDR list, skipping (and logging) bad entries."""
    networks = []
    for entry in cidrs.split(","):
        entry = entry.strip()
        if not entry:
            continue
        try:
            networks.append(ipaddress.ip_network(entry, strict=False))
        except ValueError:
            logger.warning(f"Ignoring invalid trusted proxy CIDR: {entry!r}")
    return tuple(networks)


def from_trusted_proxy(address: str) -> bool:
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return any(ip in net for net in parse_networks(get_settings().trusted_proxy_cidrs))


def get_client_ip(request) -> str:
    peer = get_remote_address(request)
    if not from_trusted_proxy(peer):
        return peer
    # Leftmost hop is the original caller
    first_hop = request.headers.get("x-forwarded-for", "").split(",")[0].strip()
    return first_hop or peer


def get_rate_limit_key(request) -> str:
    actor_id = request.headers.get("x-actor-id", "").strip()
    return f"actor:{actor_id}" if actor_id else f"ip:{get_client_ip(request)}"


limiter = Limiter(key_func=get_rate_limit_key)
