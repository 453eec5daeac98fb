"""Host/port parsing, IP family handling and SIP target resolution."""

from __future__ import annotations

import enum
import ipaddress
import socket
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Tuple, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]
Lookup = Callable[[str], Iterable[IPAddress]]


class IPFamily(str, enum.Enum):
    """Address family selected from the local interface IP."""

    V4 = "ipv4"
    V6 = "ipv6"

    def __str__(self) -> str:
        return self.value


def _split_host_port(value: str) -> Tuple[str, str]:
    """Split ``host:port`` or ``[host]:port``; raise ValueError with the reason."""
    colon = value.rfind(":")
    if colon < 0:
        raise ValueError("missing port in address")
    if value.startswith("["):
        end = value.find("]")
        if end < 0:
            raise ValueError("missing ']' in address")
        if end + 1 == len(value):
            raise ValueError("missing port in address")
        if end + 1 != colon:
            if value[end + 1] == ":":
                raise ValueError("too many colons in address")
            raise ValueError("missing port in address")
        host = value[1:end]
        open_from, close_from = 1, end + 1
    else:
        host = value[:colon]
        if ":" in host:
            raise ValueError("too many colons in address")
        open_from = close_from = 0
    if "[" in value[open_from:]:
        raise ValueError("unexpected '[' in address")
    if "]" in value[close_from:]:
        raise ValueError("unexpected ']' in address")
    return host, value[colon + 1:]


def parse_host_port(value: str) -> Tuple[str, int]:
    """Parse ``host:port`` for IPv4, bracketed IPv6 and DNS hostnames."""
    try:
        host, port_text = _split_host_port(value)
    except ValueError as err:
        raise ValueError(f'invalid host "{value}": address {value}: {err}') from err

    host = host.removeprefix("[").removesuffix("]")
    if not host.strip():
        raise ValueError(f'invalid host "{value}": host is empty')

    if not (port_text.isascii() and port_text.isdigit()) or int(port_text) > 0xFFFF:
        raise ValueError(f'invalid host "{value}": invalid port "{port_text}"')
    return host, int(port_text)


def _parse_literal(text: str) -> Optional[IPAddress]:
    if not text or "%" in text:
        return None
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def _coerce_ip(ip: Union[str, IPAddress, None]) -> Optional[IPAddress]:
    if ip is None or isinstance(ip, (ipaddress.IPv4Address, ipaddress.IPv6Address)):
        return ip
    return _parse_literal(str(ip))


def _is_v4(ip: IPAddress) -> bool:
    if isinstance(ip, ipaddress.IPv4Address):
        return True
    return ip.ipv4_mapped is not None


def _ip_text(ip: IPAddress) -> str:
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        return str(ip.ipv4_mapped)
    return str(ip)


def _join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def detect_ip_family(ip: Union[str, IPAddress, None]) -> IPFamily:
    """Return the family of an IP; IPv4-mapped IPv6 addresses count as IPv4."""
    if ip is None:
        raise ValueError("IP is required")
    parsed = _coerce_ip(ip)
    if parsed is None:
        raise ValueError(f'unsupported IP family for "{ip}"')
    return IPFamily.V4 if _is_v4(parsed) else IPFamily.V6


def is_ip_in_family(ip: Union[str, IPAddress, None], family: Union[IPFamily, str]) -> bool:
    """Tell whether an IP belongs to the given family."""
    parsed = _coerce_ip(ip)
    if parsed is None:
        return False
    if family == IPFamily.V4:
        return _is_v4(parsed)
    if family == IPFamily.V6:
        return not _is_v4(parsed)
    return False


def udp_network_for_family(family: Union[IPFamily, str]) -> str:
    """Return the UDP network name (``udp4`` or ``udp6``) for a family."""
    if family == IPFamily.V4:
        return "udp4"
    if family == IPFamily.V6:
        return "udp6"
    raise ValueError(f'unsupported IP family "{family}"')


@dataclass(frozen=True)
class ResolvedTarget:
    """A SIP host resolved to one address of the wanted family."""

    hostname: str
    port: int
    remote_ip: IPAddress
    remote_addr: str
    family: IPFamily


def _system_lookup(host: str) -> List[IPAddress]:
    addresses: List[IPAddress] = []
    for *_, sockaddr in socket.getaddrinfo(host, None):
        addr = _parse_literal(str(sockaddr[0]).split("%", 1)[0])
        if addr is not None and addr not in addresses:
            addresses.append(addr)
    return addresses


def build_resolved_target(host: str, port: int, ip: IPAddress, family: IPFamily) -> ResolvedTarget:
    """Assemble a ResolvedTarget with a ``host:port`` style remote address."""
    return ResolvedTarget(
        hostname=host,
        port=port,
        remote_ip=ip,
        remote_addr=_join_host_port(_ip_text(ip), port),
        family=family,
    )


def resolve_sip_target(
    host: str,
    port: int,
    family: IPFamily,
    lookup: Optional[Lookup] = None,
) -> ResolvedTarget:
    """Resolve a SIP host to the first address matching the local IP family."""
    literal = _parse_literal(host)
    if literal is not None:
        if not is_ip_in_family(literal, family):
            raise ValueError(
                f"host literal IP family does not match local-ip family {family}: {_ip_text(literal)}"
            )
        return build_resolved_target(host, port, literal, family)

    lookup = lookup or _system_lookup
    try:
        candidates = list(lookup(host))
    except OSError as err:
        raise OSError(f'lookup host "{host}": {err}') from err

    for candidate in candidates:
        ip = _coerce_ip(candidate)
        if ip is not None and is_ip_in_family(ip, family):
            return build_resolved_target(host, port, ip, family)

    if family == IPFamily.V4:
        raise ValueError(f"local-ip is IPv4 but host {host} has no IPv4 address")
    raise ValueError(f"local-ip is IPv6 but host {host} has no IPv6 address")