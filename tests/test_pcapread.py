import struct
from datetime import timedelta

import pytest

from siptester.capture import CaptureError, Packet
from siptester.decode import DecodedPacket
from siptester.pcapread import (
    CapturedPacket,
    RTPPacket,
    SSRCNotFoundError,
    build_packet_diagnostics,
    capture_duration,
    decodable_udp_count,
    extract_rtp_by_ssrc,
    filter_ssrc,
    load_pcap,
    load_pcap_with_link_type,
    parse_rtp_packet,
    stream_duration,
)

_ETH = bytes([6, 7, 8, 9, 10, 11, 0, 1, 2, 3, 4, 5]) + b"\x08\x00"


def _ipv4(proto, src, dst, total):
    ip = bytearray(20)
    ip[0] = 0x45
    struct.pack_into(">H", ip, 2, total)
    ip[8] = 64
    ip[9] = proto
    ip[12:16] = bytes(src)
    ip[16:20] = bytes(dst)
    return bytes(ip)


def ether_udp(src, dst, sport, dport, payload):
    ip = _ipv4(17, src, dst, 28 + len(payload))
    udp = struct.pack(">HHHH", sport, dport, 8 + len(payload), 0)
    return _ETH + ip + udp + payload


def ether_tcp(src, dst, sport, dport, payload):
    ip = _ipv4(6, src, dst, 40 + len(payload))
    tcp = bytearray(20)
    struct.pack_into(">HH", tcp, 0, sport, dport)
    tcp[12] = 0x50
    return _ETH + ip + bytes(tcp) + payload


def write_pcap(path, link_type, start_sec, *frames):
    with open(path, "wb") as fh:
        fh.write(struct.pack("<IHHiIII", 0xA1B2C3D4, 2, 4, 0, 0, 65535, link_type))
        for i, frame in enumerate(frames):
            fh.write(struct.pack("<IIII", start_sec, i * 1000, len(frame), len(frame)))
            fh.write(frame)


def rtp_payload(ssrc, seq, ts):
    return struct.pack(">BBHII", 0x80, 96, seq, ts, ssrc)


def test_load_pcap_with_link_type(tmp_path):
    path = tmp_path / "sample.pcap"
    payload = rtp_payload(0x11223344, 1000, 5000) + b"\x01\x02\x03"
    write_pcap(path, 1, 100, ether_udp([192, 0, 2, 1], [198, 51, 100, 20], 5060, 4000, payload))

    packets, link_type = load_pcap_with_link_type(str(path))
    assert link_type == 1
    assert len(packets) == 1
    assert packets[0].decode_error is None
    assert packets[0].decoded.is_udp
    assert packets[0].decoded.payload == payload


def test_load_pcap_missing_file():
    with pytest.raises(CaptureError, match="cannot open pcap"):
        load_pcap_with_link_type("/definitely/missing/sample.pcap")


def test_load_pcap_empty_capture(tmp_path):
    path = tmp_path / "empty.pcap"
    write_pcap(path, 1, 100)
    with pytest.raises(CaptureError, match="no packets in pcap capture"):
        load_pcap(str(path))


def test_load_pcap_keeps_decode_errors(tmp_path):
    path = tmp_path / "bad.pcap"
    write_pcap(path, 1, 100, b"\x00\x01\x02")
    packets = load_pcap(str(path))
    assert len(packets) == 1
    assert str(packets[0].decode_error) == "malformed ethernet header"
    assert decodable_udp_count(packets) == 0


def test_build_packet_diagnostics():
    lines = build_packet_diagnostics(1, [CapturedPacket()], 1)
    assert len(lines) == 2
    assert lines[0] == "pcap link type: 1"
    assert lines[1] == (
        "packet #1 ts=1970-01-01T00:00:00.000000000Z link=0 ip=0 "
        "<nil>:0 -> <nil>:0 proto=0 payload=0 decode_err=none"
    )


def test_build_packet_diagnostics_clamps_sample():
    packets = [CapturedPacket(), CapturedPacket()]
    assert len(build_packet_diagnostics(1, packets, 8)) == 3
    assert build_packet_diagnostics(1, packets, -1) == ["pcap link type: 1"]


def test_extract_rtp_by_ssrc_uses_transport_layer(tmp_path):
    path = tmp_path / "rtp.pcap"
    src, dst = [10, 0, 0, 1], [10, 0, 0, 2]
    p1 = ether_udp(src, dst, 1111, 2222, rtp_payload(0x11223344, 2, 2000) + b"\x01")
    p2 = ether_udp(src, dst, 1111, 2222, rtp_payload(0x11223344, 1, 1000) + b"\x02")
    non = ether_tcp(src, dst, 5060, 5060, b"INVITE sip:test@example.com SIP/2.0\r\n\r\n")
    write_pcap(path, 1, 100, p1, non, p2)
    packets = load_pcap(str(path))

    streams = extract_rtp_by_ssrc(packets)
    pkts = streams[0x11223344]
    assert len(pkts) == 2
    assert pkts[0].capture_time_ns <= pkts[1].capture_time_ns
    assert [p.sequence for p in pkts] == [2, 1]
    assert [p.payload for p in pkts] == [b"\x01", b"\x02"]
    assert decodable_udp_count(packets) == 2


def test_filter_ssrc():
    streams = {
        0x11223344: [RTPPacket(sequence=1, capture_time_ns=10), RTPPacket(sequence=2, capture_time_ns=11)],
        0xAABBCCDD: [RTPPacket(sequence=100, capture_time_ns=10)],
    }
    filtered = filter_ssrc(streams, 0x11223344)
    assert list(filtered) == [0x11223344]
    assert len(filtered[0x11223344]) == 2
    with pytest.raises(SSRCNotFoundError, match="0xdeadbeef"):
        filter_ssrc(streams, 0xDEADBEEF)


def test_parse_rtp_packet_header_fields():
    data = struct.pack(">BBHII", 0x80, 0x80 | 8, 7, 160, 0x01020304) + b"abc"
    rtp = parse_rtp_packet(data, 42)
    assert rtp == RTPPacket(
        payload=b"abc", sequence=7, timestamp=160, marker=True,
        payload_type=8, ssrc=0x01020304, capture_time_ns=42,
    )


def test_parse_rtp_packet_padding_and_extension():
    padded = struct.pack(">BBHII", 0xA0, 0, 1, 1, 1) + b"\x01\x02\x03\x00\x02"
    assert parse_rtp_packet(padded).payload == b"\x01\x02\x03"

    ext = struct.pack(">BBHII", 0x90, 0, 1, 1, 1) + b"\xbe\xde\x00\x01" + b"\x00" * 4 + b"\xaa"
    assert parse_rtp_packet(ext).payload == b"\xaa"


@pytest.mark.parametrize(
    "data",
    [
        b"\x80" * 11,
        struct.pack(">BBHII", 0x40, 0, 1, 1, 1),
        struct.pack(">BBHII", 0x81, 0, 1, 1, 1),
        struct.pack(">BBHII", 0x90, 0, 1, 1, 1) + b"\x00\x00\x00\x02",
        struct.pack(">BBHII", 0xA0, 0, 1, 1, 1) + b"\x09",
    ],
)
def test_parse_rtp_packet_rejects(data):
    assert parse_rtp_packet(data) is None


def test_capture_and_stream_duration():
    packets = [
        CapturedPacket(raw=Packet(timestamp_ns=1_000_000_000)),
        CapturedPacket(raw=Packet(timestamp_ns=3_500_000_000)),
    ]
    assert capture_duration(packets) == timedelta(seconds=2.5)
    assert capture_duration(packets[:1]) == timedelta(0)
    assert capture_duration(packets[::-1]) == timedelta(0)

    stream = [RTPPacket(capture_time_ns=0), RTPPacket(capture_time_ns=20_000_000)]
    assert stream_duration(stream) == timedelta(milliseconds=20)
    assert stream_duration(stream[::-1]) == timedelta(0)


def test_extract_skips_decode_errors():
    payload = rtp_payload(5, 1, 1)
    packets = [
        CapturedPacket(decoded=DecodedPacket(is_udp=True, payload=payload), decode_error=ValueError("x")),
        CapturedPacket(decoded=DecodedPacket(is_udp=True, payload=payload)),
    ]
    streams = extract_rtp_by_ssrc(packets)
    assert list(streams) == [5]
    assert len(streams[5]) == 1