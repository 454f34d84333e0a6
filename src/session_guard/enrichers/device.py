"""Device extraction from request headers using the user-agents library.

Framework-agnostic: callers pass a header mapping and the peer address, so
the same helpers serve FastAPI, aiohttp, Starlette or a raw ASGI scope.
"""

import ipaddress
import logging
from collections.abc import Mapping

from user_agents import parse as parse_user_agent  # type: ignore[import-untyped]
from user_agents.parsers import UserAgent  # type: ignore[import-untyped]

from ..models.session import DeviceInfo

logger = logging.getLogger(__name__)

# Checked in order; first valid address wins
CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")

TABLET_KEYWORDS = ("ipad", "tablet", "playbook", "silk")

PRIVATE_NETWORKS = tuple(
    ipaddress.ip_network(cidr)
    for cidr in ("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16", "fc00::/7")
)


def extract_client_ip(headers: Mapping[str, str], remote_addr: str) -> str:
    """Determine the client IP behind common proxies.

    Precedence: X-Forwarded-For (first entry) -> X-Real-IP ->
    CF-Connecting-IP -> remote_addr with any port stripped. A header whose
    value is not a valid IP is skipped.

    Args:
        headers: Request headers (any case)
        remote_addr: Peer address, e.g. "203.0.113.7:51234" or "[::1]:8080"

    Returns:
        Client IP string
    """
    lowered = {key.lower(): value for key, value in headers.items()}

    for header in CLIENT_IP_HEADERS:
        value = lowered.get(header, "")
        if not value:
            continue
        candidate = value.split(",")[0].strip()
        if _is_valid_ip(candidate):
            return candidate

    return _strip_port(remote_addr)


def extract_device_info(headers: Mapping[str, str], remote_addr: str) -> DeviceInfo:
    """Build DeviceInfo from request headers.

    Args:
        headers: Request headers (any case)
        remote_addr: Peer address

    Returns:
        DeviceInfo with browser/OS as "Family Version" and a device type of
        mobile, bot, tablet or desktop
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    user_agent = lowered.get("user-agent", "")
    ip = extract_client_ip(headers, remote_addr)

    if not user_agent:
        return DeviceInfo(ip=ip, device_type="desktop")

    ua: UserAgent = parse_user_agent(user_agent)
    return DeviceInfo(
        ip=ip,
        user_agent=user_agent,
        browser=_join(ua.browser.family, ua.browser.version_string),
        os=_join(ua.os.family, ua.os.version_string),
        device_type=_device_type(ua, user_agent),
    )


def is_private_ip(ip: str) -> bool:
    """True for loopback and private ranges; False for invalid input."""
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False

    if address.is_loopback:
        return True
    return any(
        address.version == network.version and address in network
        for network in PRIVATE_NETWORKS
    )


def _device_type(ua: UserAgent, user_agent: str) -> str:
    if ua.is_mobile:
        return "mobile"
    if ua.is_bot:
        return "bot"
    lowered = user_agent.lower()
    if ua.is_tablet or any(keyword in lowered for keyword in TABLET_KEYWORDS):
        return "tablet"
    return "desktop"


def _join(family: str, version: str) -> str:
    return f"{family} {version}" if version else family


def _is_valid_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


def _strip_port(remote_addr: str) -> str:
    if remote_addr.startswith("["):
        end = remote_addr.find("]")
        if end != -1:
            return remote_addr[1:end]
    if remote_addr.count(":") == 1:
        return remote_addr.split(":", 1)[0]
    # Bare IPv4, bare IPv6 or something unparseable
    return remote_addr
