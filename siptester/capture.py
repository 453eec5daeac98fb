"""Reading classic pcap and pcapng capture files into raw packets."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import BinaryIO, Dict, List, Tuple

LINKTYPE_NULL = 0
LINKTYPE_ETHERNET = 1
LINKTYPE_RAW = 12
LINKTYPE_LINUX_SLL = 113
LINKTYPE_LINUX_SLL2 = 276

_NS_PER_SEC = 1_000_000_000
_INT32_MAX = 2**31 - 1
_INT64_MAX = 2**63 - 1
_MAX_RECORD_LEN = 64 * 1024 * 1024
_DEFAULT_TS_SCALE = 1_000_000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Magic read big-endian -> (struct byte-order prefix, nanosecond timestamps).
_PCAP_MAGICS: Dict[int, Tuple[str, bool]] = {
    0xA1B2C3D4: (">", False),
    0xD4C3B2A1: ("<", False),
    0xA1B23C4D: (">", True),
    0x4D3CB2A1: ("<", True),
}

_PCAPNG_SECTION_HEADER = 0x0A0D0D0A
_PCAPNG_INTERFACE_DESC = 0x00000001
_PCAPNG_ENHANCED_PACKET = 0x00000006
_PCAPNG_BOM_LITTLE = 0x1A2B3C4D
_PCAPNG_BOM_BIG = 0x4D3C2B1A
_PCAPNG_OPT_END = 0
_PCAPNG_OPT_IF_TSRESOL = 9
_PCAPNG_SIGNATURE = bytes([0x0A, 0x0D, 0x0D, 0x0A])


class CaptureError(Exception):
    """Raised when a capture file cannot be opened or is malformed."""


class FileFormat(str, enum.Enum):
    """On-disk capture format."""

    PCAP = "pcap"
    PCAPNG = "pcapng"

    def __str__(self) -> str:
        return self.value


def _to_datetime(timestamp_ns: int) -> datetime:
    return _EPOCH + timedelta(microseconds=timestamp_ns // 1000)


@dataclass
class Packet:
    """One captured frame with its capture time in nanoseconds since the epoch."""

    timestamp_ns: int = 0
    data: bytes = b""
    link_type: int = 0

    @property
    def timestamp(self) -> datetime:
        """Capture time as an aware UTC datetime (microsecond precision)."""
        return _to_datetime(self.timestamp_ns)


@dataclass
class CaptureInfo:
    """Summary of a capture file."""

    format: FileFormat
    link_types: List[int] = field(default_factory=list)
    count: int = 0


def _read_exact(stream: BinaryIO, size: int) -> bytes:
    """Read up to ``size`` bytes, returning fewer only at end of stream."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = stream.read(remaining)
        if not chunk:
            break
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def _read_required(stream: BinaryIO, size: int, context: str) -> bytes:
    """Read exactly ``size`` bytes or raise CaptureError prefixed with ``context``."""
    data = _read_exact(stream, size)
    if len(data) < size:
        reason = "EOF" if not data else "unexpected EOF"
        raise CaptureError(f"{context}: {reason}")
    return data


def read_all(path: str) -> Tuple[List[Packet], CaptureInfo]:
    """Read every packet of a pcap or pcapng file, detecting the format."""
    try:
        stream = open(path, "rb")
    except OSError as err:
        raise CaptureError(f'cannot open pcap "{path}": {err}') from err
    with stream:
        head = _read_required(stream, 4, "cannot read file header")
        stream.seek(0)
        if head == _PCAPNG_SIGNATURE:
            return read_pcapng(stream)
        return read_pcap(stream)


def read_pcap(stream: BinaryIO) -> Tuple[List[Packet], CaptureInfo]:
    """Read a classic pcap stream (micro- or nanosecond, either byte order)."""
    header = _read_required(stream, 24, "cannot read pcap global header")

    magic = int.from_bytes(header[0:4], "big")
    try:
        order, nano = _PCAP_MAGICS[magic]
    except KeyError:
        raise CaptureError(f"unsupported pcap magic 0x{magic:08x}") from None

    (link_type,) = struct.unpack_from(f"{order}I", header, 20)
    packets: List[Packet] = []
    while True:
        record = _read_exact(stream, 16)
        if len(record) < 16:
            break
        sec, frac, incl, orig = struct.unpack(f"{order}IIII", record)
        if incl > _MAX_RECORD_LEN or orig < incl:
            raise CaptureError(f"invalid pcap record lengths incl={incl} orig={orig}")
        data = _read_required(stream, incl, "invalid pcap record payload")
        nsec = frac if nano else frac * 1000
        if nsec > _INT32_MAX:
            nsec = 0
        packets.append(Packet(timestamp_ns=sec * _NS_PER_SEC + nsec, data=data, link_type=link_type))

    return packets, CaptureInfo(format=FileFormat.PCAP, link_types=[link_type], count=len(packets))


def _ts_scale_from_resol(value: int) -> int:
    """Ticks per second for an if_tsresol option value."""
    base = 2 if value & 0x80 else 10
    limit = _INT64_MAX // base
    scale = 1
    for _ in range(value & 0x7F):
        if scale >= limit:
            break
        scale *= base
    return scale or _DEFAULT_TS_SCALE


def _trunc_div(numerator: int, denominator: int) -> int:
    quotient = abs(numerator) // abs(denominator)
    return quotient if (numerator >= 0) == (denominator > 0) else -quotient


def _ticks_to_ns(ticks: int, scale: int) -> int:
    if scale <= 0:
        scale = _DEFAULT_TS_SCALE
    if ticks > _INT64_MAX:
        ticks -= 2**64
    sec = _trunc_div(ticks, scale)
    rem = ticks - sec * scale
    return sec * _NS_PER_SEC + _trunc_div(rem * _NS_PER_SEC, scale)


def _parse_interface(payload: bytes, order: str) -> Tuple[int, int]:
    """Return (link type, timestamp scale) of an interface description block."""
    (link_type,) = struct.unpack_from(f"{order}H", payload, 0)
    scale = _DEFAULT_TS_SCALE
    opts = payload[8:]
    while len(opts) >= 4:
        code, length = struct.unpack_from(f"{order}HH", opts, 0)
        opts = opts[4:]
        if length > len(opts):
            break
        value = opts[:length]
        pad = (-length) % 4
        if length + pad > len(opts):
            break
        opts = opts[length + pad:]
        if code == _PCAPNG_OPT_END:
            break
        if code == _PCAPNG_OPT_IF_TSRESOL and len(value) == 1:
            scale = _ts_scale_from_resol(value[0])
    return link_type, scale


def read_pcapng(stream: BinaryIO) -> Tuple[List[Packet], CaptureInfo]:
    """Read a pcapng stream: section, interface and enhanced packet blocks."""
    interfaces: Dict[int, Tuple[int, int]] = {}
    order = "<"
    in_section = False
    packets: List[Packet] = []
    link_types_seen: Dict[int, None] = {}

    while True:
        header = _read_exact(stream, 8)
        if len(header) < 8:
            break
        block_type, block_len = struct.unpack("<II", header)
        if block_len < 12:
            raise CaptureError(f"invalid pcapng block length {block_len}")
        body = _read_required(stream, block_len - 8, "invalid pcapng block payload")
        (trailer,) = struct.unpack("<I", body[-4:])
        if trailer != block_len:
            raise CaptureError("invalid pcapng trailing block length")
        payload = body[:-4]

        if block_type == _PCAPNG_SECTION_HEADER:
            if len(payload) < 16:
                raise CaptureError("invalid pcapng section header")
            (bom,) = struct.unpack_from("<I", payload, 0)
            if bom == _PCAPNG_BOM_LITTLE:
                order = "<"
            elif bom == _PCAPNG_BOM_BIG:
                order = ">"
            else:
                raise CaptureError(f"invalid pcapng byte-order magic 0x{bom:08x}")
            interfaces = {}
            in_section = True
        elif block_type == _PCAPNG_INTERFACE_DESC:
            if not in_section or len(payload) < 8:
                continue
            link_type, scale = _parse_interface(payload, order)
            interfaces[len(interfaces)] = (link_type, scale)
            link_types_seen[link_type] = None
        elif block_type == _PCAPNG_ENHANCED_PACKET:
            if len(payload) < 20:
                raise CaptureError("invalid pcapng enhanced packet block")
            iface_id, ts_high, ts_low, cap_len = struct.unpack_from(f"{order}IIII", payload, 0)
            if iface_id not in interfaces:
                raise CaptureError(f"pcapng packet references unknown interface {iface_id}")
            link_type, scale = interfaces[iface_id]
            if 20 + cap_len > len(payload):
                raise CaptureError(f"invalid pcapng captured length {cap_len}")
            ticks = (ts_high << 32) | ts_low
            packets.append(
                Packet(
                    timestamp_ns=_ticks_to_ns(ticks, scale),
                    data=bytes(payload[20:20 + cap_len]),
                    link_type=link_type,
                )
            )

    info = CaptureInfo(format=FileFormat.PCAPNG, link_types=list(link_types_seen), count=len(packets))
    return packets, info