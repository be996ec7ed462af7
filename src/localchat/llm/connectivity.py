"""Device connectivity and host classification."""

from __future__ import annotations

import ipaddress
import logging
from pathlib import Path
from typing import Callable

import httpx

_logger = logging.getLogger(__name__)

_SYS_NET = Path("/sys/class/net")

# Interface states that count as "has a link".  Tunnels and some virtual
# devices never leave "unknown".
_UP_STATES = {"up", "unknown"}

# Returns True when the device has no connectivity
OfflineProbe = Callable[[], bool]


def is_device_offline(sys_net: Path = _SYS_NET) -> bool:
    """Return True if no non-loopback interface is up.

    Only Linux exposes this cheaply; elsewhere (or if sysfs is unreadable)
    the device is assumed online and the request itself finds out.
    """
    try:
        interfaces = [p for p in sys_net.iterdir() if p.name != "lo"]
    except OSError:
        _logger.debug("Cannot read %s; assuming online", sys_net)
        return False
    if not interfaces:
        return False
    for iface in interfaces:
        try:
            state = (iface / "operstate").read_text().strip().lower()
        except OSError:
            continue
        if state in _UP_STATES:
            return False
    return True


def is_local_network_url(url: str) -> bool:
    """True for loopback, private/link-local addresses, ``localhost`` and ``*.local``."""
    try:
        host = httpx.URL(url).host
    except (httpx.InvalidURL, TypeError):
        return False
    if not host:
        return False
    host = host.lower()
    if host == "localhost" or host.endswith(".local"):
        return True
    try:
        addr = ipaddress.ip_address(host)
    except ValueError:
        return False
    return addr.is_loopback or addr.is_private or addr.is_link_local
