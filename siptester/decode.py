"""Decoding of link, network and transport layers of captured frames."""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple, Union

from .capture import (
    LINKTYPE_ETHERNET,
    LINKTYPE_LINUX_SLL,
    LINKTYPE_LINUX_SLL2,
    LINKTYPE_NULL,
    LINKTYPE_RAW,
    Packet,
    _to_datetime,
)

ETHERTYPE_IPV4 = 0x0800
ETHERTYPE_IPV6 = 0x86DD
_VLAN_ETHERTYPES = frozenset({0x8100, 0x88A8, 0x9100})
IPPROTO_TCP = 6
IPPROTO_UDP = 17

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class DecodeError(ValueError):
    """Raised when a frame cannot be decoded; ``packet`` holds what was decoded so far."""

    def __init__(self, message: str, packet: Optional["DecodedPacket"] = None) -> None:
        super().__init__(message)
        self.packet = packet


class _Malformed(Exception):
    pass


@dataclass
class DecodedPacket:
    """Header fields and transport payload of a decoded frame."""

    timestamp_ns: int = 0
    link_type: int = 0
    ether_type: int = 0
    ip_version: int = 0
    src_ip: Optional[IPAddress] = None
    dst_ip: Optional[IPAddress] = None
    protocol: int = 0
    src_port: int = 0
    dst_port: int = 0
    is_udp: bool = False
    is_tcp: bool = False
    payload: bytes = b""

    @property
    def timestamp(self) -> datetime:
        """Capture time as an aware UTC datetime (microsecond precision)."""
        return _to_datetime(self.timestamp_ns)


def _u16(data: bytes, offset: int) -> int:
    return int.from_bytes(data[offset:offset + 2], "big")


def decode_packet(packet: Packet) -> DecodedPacket:
    """Decode a captured frame down to its transport payload."""
    out = DecodedPacket(timestamp_ns=packet.timestamp_ns, link_type=packet.link_type)
    data = packet.data
    link_type = packet.link_type
    try:
        if link_type == LINKTYPE_ETHERNET:
            out.ether_type, l3 = _parse_ethernet(data)
        elif link_type == LINKTYPE_RAW:
            l3 = data
        elif link_type == LINKTYPE_LINUX_SLL:
            out.ether_type, l3 = _parse_sll(data)
        elif link_type == LINKTYPE_LINUX_SLL2:
            out.ether_type, l3 = _parse_sll2(data)
        elif link_type == LINKTYPE_NULL:
            l3 = _parse_null(data)
        else:
            raise _Malformed(f"unsupported link type {link_type}")
        _decode_ip_and_transport(out, l3)
    except _Malformed as err:
        raise DecodeError(str(err), out) from None
    return out


def _parse_ethernet(data: bytes) -> Tuple[int, bytes]:
    if len(data) < 14:
        raise _Malformed("malformed ethernet header")
    ether_type = _u16(data, 12)
    offset = 14
    while ether_type in _VLAN_ETHERTYPES:
        if len(data) < offset + 4:
            raise _Malformed("malformed vlan header")
        ether_type = _u16(data, offset + 2)
        offset += 4
    return ether_type, data[offset:]


def _parse_sll(data: bytes) -> Tuple[int, bytes]:
    if len(data) < 16:
        raise _Malformed("malformed linux sll header")
    return _u16(data, 14), data[16:]


def _parse_sll2(data: bytes) -> Tuple[int, bytes]:
    if len(data) < 20:
        raise _Malformed("malformed linux sll2 header")
    return _u16(data, 0), data[20:]


def _parse_null(data: bytes) -> bytes:
    if len(data) < 4:
        raise _Malformed("malformed null/loopback header")
    return data[4:]


def _decode_ip_and_transport(out: DecodedPacket, l3: bytes) -> None:
    if not l3:
        raise _Malformed("empty network payload")
    version = l3[0] >> 4
    if version == 4 or (version != 6 and out.ether_type == ETHERTYPE_IPV4):
        _parse_ipv4(out, l3)
    elif version == 6 or out.ether_type == ETHERTYPE_IPV6:
        _parse_ipv6(out, l3)
    else:
        raise _Malformed(f"unsupported network layer version nibble {version}")


def _parse_ipv4(out: DecodedPacket, data: bytes) -> None:
    if len(data) < 20:
        raise _Malformed("malformed ipv4 header")
    header_len = (data[0] & 0x0F) * 4
    if header_len < 20 or len(data) < header_len:
        raise _Malformed("invalid ipv4 header length")
    total = _u16(data, 2)
    if total == 0 or total > len(data):
        total = len(data)
    if _u16(data, 6) & 0x1FFF:
        raise _Malformed("ipv4 fragment offset unsupported")
    out.ip_version = 4
    out.protocol = data[9]
    out.src_ip = ipaddress.IPv4Address(bytes(data[12:16]))
    out.dst_ip = ipaddress.IPv4Address(bytes(data[16:20]))
    _parse_transport(out, out.protocol, data[header_len:total])


def _parse_ipv6(out: DecodedPacket, data: bytes) -> None:
    if len(data) < 40:
        raise _Malformed("malformed ipv6 header")
    out.ip_version = 6
    out.src_ip = ipaddress.IPv6Address(bytes(data[8:24]))
    out.dst_ip = ipaddress.IPv6Address(bytes(data[24:40]))
    next_header = data[6]
    offset = 40
    while True:
        if next_header in (0, 43, 60):
            if len(data) < offset + 2:
                raise _Malformed("malformed ipv6 extension header")
            header_len = (data[offset + 1] + 1) * 8
            next_header = data[offset]
            offset += header_len
        elif next_header == 44:
            if len(data) < offset + 8:
                raise _Malformed("malformed ipv6 fragment header")
            if _u16(data, offset + 2) & 0xFFF8:
                raise _Malformed("ipv6 fragmented packet unsupported")
            next_header = data[offset]
            offset += 8
        elif next_header == 51:
            if len(data) < offset + 2:
                raise _Malformed("malformed ipv6 auth header")
            header_len = (data[offset + 1] + 2) * 4
            next_header = data[offset]
            offset += header_len
        else:
            if offset > len(data):
                raise _Malformed("invalid ipv6 extension chain")
            out.protocol = next_header
            _parse_transport(out, next_header, data[offset:])
            return
        if offset > len(data):
            raise _Malformed("invalid ipv6 extension chain")


def _parse_transport(out: DecodedPacket, protocol: int, payload: bytes) -> None:
    if protocol == IPPROTO_UDP:
        if len(payload) < 8:
            raise _Malformed("malformed udp header")
        out.is_udp = True
        out.src_port = _u16(payload, 0)
        out.dst_port = _u16(payload, 2)
        length = _u16(payload, 4)
        if length <= 0 or length > len(payload):
            length = len(payload)
        out.payload = bytes(payload[8:length])
    elif protocol == IPPROTO_TCP:
        if len(payload) < 20:
            raise _Malformed("malformed tcp header")
        offset = (payload[12] >> 4) * 4
        if offset < 20 or offset > len(payload):
            raise _Malformed("invalid tcp data offset")
        out.is_tcp = True
        out.src_port = _u16(payload, 0)
        out.dst_port = _u16(payload, 2)
        out.payload = bytes(payload[offset:])
    else:
        out.payload = bytes(payload)