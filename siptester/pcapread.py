"""Loading decoded capture packets and extracting RTP streams by SSRC."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .capture import CaptureError, Packet, read_all
from .decode import DecodedPacket, DecodeError, decode_packet

_NS_PER_SEC = 1_000_000_000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SSRCNotFoundError(LookupError):
    """Raised when a requested SSRC has no RTP stream."""


@dataclass
class CapturedPacket:
    """A raw captured frame together with its decoding result."""

    raw: Packet = field(default_factory=Packet)
    decoded: DecodedPacket = field(default_factory=DecodedPacket)
    decode_error: Optional[Exception] = None


@dataclass
class RTPPacket:
    """One RTP packet with its header fields and payload."""

    payload: bytes = b""
    sequence: int = 0
    timestamp: int = 0
    marker: bool = False
    payload_type: int = 0
    ssrc: int = 0
    capture_time_ns: int = 0

    @property
    def capture_time(self) -> datetime:
        """Capture time as an aware UTC datetime (microsecond precision)."""
        return _EPOCH + timedelta(microseconds=self.capture_time_ns // 1000)


def load_pcap(path: str) -> List[CapturedPacket]:
    """Read and decode every packet of a capture file."""
    packets, _ = load_pcap_with_link_type(path)
    return packets


def load_pcap_with_link_type(path: str) -> Tuple[List[CapturedPacket], int]:
    """Read and decode a capture file; also return the first packet's link type."""
    raw_packets, info = read_all(path)
    first_link_type = raw_packets[0].link_type if raw_packets else 0
    packets = [_decode(raw) for raw in raw_packets]
    if not packets:
        raise CaptureError(f"no packets in {info.format} capture")
    return packets, first_link_type


def _decode(raw: Packet) -> CapturedPacket:
    try:
        return CapturedPacket(raw=raw, decoded=decode_packet(raw))
    except DecodeError as err:
        partial = err.packet or DecodedPacket(timestamp_ns=raw.timestamp_ns, link_type=raw.link_type)
        return CapturedPacket(raw=raw, decoded=partial, decode_error=err)


def _span(start_ns: int, end_ns: int) -> timedelta:
    if end_ns < start_ns:
        return timedelta(0)
    return timedelta(microseconds=(end_ns - start_ns) // 1000)


def capture_duration(packets: Sequence[CapturedPacket]) -> timedelta:
    """Time between the first and the last captured packet."""
    if len(packets) < 2:
        return timedelta(0)
    return _span(packets[0].raw.timestamp_ns, packets[-1].raw.timestamp_ns)


def _format_timestamp(timestamp_ns: int) -> str:
    seconds, fraction = divmod(timestamp_ns, _NS_PER_SEC)
    dt = _EPOCH + timedelta(seconds=seconds)
    return (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d}T"
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}.{fraction:09d}Z"
    )


def _ip_text(ip) -> str:
    return "<nil>" if ip is None else str(ip)


def build_packet_diagnostics(
    link_type: int, packets: Sequence[CapturedPacket], sample_size: int
) -> List[str]:
    """Describe the link type and the first ``sample_size`` packets."""
    sample_size = max(0, min(sample_size, len(packets)))
    lines = [f"pcap link type: {link_type}"]
    for number, packet in enumerate(packets[:sample_size], start=1):
        decoded = packet.decoded
        error_text = "none" if packet.decode_error is None else str(packet.decode_error)
        lines.append(
            f"packet #{number} ts={_format_timestamp(packet.raw.timestamp_ns)} "
            f"link={packet.raw.link_type} ip={decoded.ip_version} "
            f"{_ip_text(decoded.src_ip)}:{decoded.src_port} -> "
            f"{_ip_text(decoded.dst_ip)}:{decoded.dst_port} "
            f"proto={decoded.protocol} payload={len(decoded.payload)} decode_err={error_text}"
        )
    return lines


def extract_rtp_by_ssrc(packets: Sequence[CapturedPacket]) -> Dict[int, List[RTPPacket]]:
    """Group the RTP packets found in UDP payloads by SSRC, sorted by capture time."""
    streams: Dict[int, List[RTPPacket]] = {}
    for packet in packets:
        if packet.decode_error is not None or not packet.decoded.is_udp:
            continue
        rtp = parse_rtp_packet(packet.decoded.payload, packet.decoded.timestamp_ns)
        if rtp is None:
            continue
        streams.setdefault(rtp.ssrc, []).append(rtp)
    for stream in streams.values():
        stream.sort(key=lambda rtp: rtp.capture_time_ns)
    return streams


def decodable_udp_count(packets: Sequence[CapturedPacket]) -> int:
    """Count packets that decoded cleanly down to UDP."""
    return sum(1 for p in packets if p.decode_error is None and p.decoded.is_udp)


def filter_ssrc(streams: Mapping[int, List[RTPPacket]], *requested: int) -> Dict[int, List[RTPPacket]]:
    """Keep only the requested SSRCs; raise SSRCNotFoundError for a missing one."""
    filtered: Dict[int, List[RTPPacket]] = {}
    for ssrc in requested:
        if ssrc not in streams:
            raise SSRCNotFoundError(f"ssrc not found: 0x{ssrc:08x}")
        filtered[ssrc] = streams[ssrc]
    return filtered


def stream_duration(pkts: Sequence[RTPPacket]) -> timedelta:
    """Time between the first and the last packet of a stream."""
    if len(pkts) < 2:
        return timedelta(0)
    return _span(pkts[0].capture_time_ns, pkts[-1].capture_time_ns)


def parse_rtp_packet(payload: bytes, capture_time: int = 0) -> Optional[RTPPacket]:
    """Parse an RTP version 2 packet; return None if the bytes are not RTP.

    ``capture_time`` is the capture time in nanoseconds since the epoch.
    """
    size = len(payload)
    if size < 12 or payload[0] >> 6 != 2:
        return None
    header_len = 12 + (payload[0] & 0x0F) * 4
    if size < header_len:
        return None
    if payload[0] & 0x10:
        if size < header_len + 4:
            return None
        ext_words = int.from_bytes(payload[header_len + 2:header_len + 4], "big")
        header_len += 4 + ext_words * 4
        if size < header_len:
            return None
    padding = 0
    if payload[0] & 0x20:
        padding = payload[-1]
        if padding > size - header_len:
            return None
    return RTPPacket(
        payload=bytes(payload[header_len:size - padding]),
        sequence=int.from_bytes(payload[2:4], "big"),
        timestamp=int.from_bytes(payload[4:8], "big"),
        marker=bool(payload[1] & 0x80),
        payload_type=payload[1] & 0x7F,
        ssrc=int.from_bytes(payload[8:12], "big"),
        capture_time_ns=capture_time,
    )