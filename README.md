# siptester

A library for preparing SIP test calls from recorded traffic. It reads packet
captures in the classic pcap and the pcapng formats, decodes the link, network
and transport layers, groups RTP packets by SSRC, finds the first SIP INVITE
that carries an SDP body, and validates the settings for a test call.

It uses only the Python standard library and needs Python 3.10 or later.

## Modules

### `siptester.capture`

- `read_all(path)` looks at the first four bytes of the file to tell pcapng
  from pcap and returns `(packets, info)`: a list of `Packet` and a
  `CaptureInfo` with `format` (`FileFormat.PCAP` or `FileFormat.PCAPNG`),
  `link_types` and `count`.
- `read_pcap(stream)` and `read_pcapng(stream)` read from an open binary
  stream. Both byte orders are handled, as are microsecond and nanosecond pcap
  timestamps and the pcapng `if_tsresol` interface option.
- `Packet` holds `timestamp_ns` (nanoseconds since the epoch), `data` and
  `link_type`; its `timestamp` property gives an aware UTC `datetime`.
- Link type constants: `LINKTYPE_NULL`, `LINKTYPE_ETHERNET`, `LINKTYPE_RAW`,
  `LINKTYPE_LINUX_SLL`, `LINKTYPE_LINUX_SLL2`.

### `siptester.decode`

`decode_packet(packet)` returns a `DecodedPacket` (addresses, ports, protocol,
`is_udp`/`is_tcp` and the transport payload). It handles:

- Ethernet, including stacked VLAN/QinQ tags
- raw IP
- Linux cooked capture v1 and v2
- BSD null/loopback

then IPv4 or IPv6 (following the IPv6 extension header chain) and UDP or TCP.
Unsupported link types, malformed headers and fragmented packets raise
`DecodeError`; its `packet` attribute holds the fields decoded so far.

### `siptester.pcapread`

- `load_pcap(path)` reads and decodes every packet into `CapturedPacket`
  records (`raw`, `decoded`, `decode_error`). A packet that fails to decode is
  kept, with the error stored in `decode_error`. An empty capture raises
  `CaptureError`.
- `load_pcap_with_link_type(path)` also returns the first packet's link type.
- `extract_rtp_by_ssrc(packets)` parses RTP (version 2) from cleanly decoded
  UDP payloads and returns `{ssrc: [RTPPacket, ...]}`, each stream sorted by
  capture time.
- `parse_rtp_packet(payload, capture_time)` parses one RTP packet, handling
  CSRCs, header extensions and padding; it returns `None` for non-RTP bytes.
- `filter_ssrc(streams, *ssrcs)` keeps the requested streams and raises
  `SSRCNotFoundError` for a missing one.
- `decodable_udp_count`, `capture_duration`, `stream_duration` and
  `build_packet_diagnostics(link_type, packets, sample_size)` help with
  reporting and debugging.

### `siptester.invite`

- `find_first_invite_with_sdp(packets)` returns the SDP body of the first
  INVITE with `Content-Type: application/sdp`. An INVITE split over several
  consecutive packets is joined using its `Content-Length`. It raises
  `InviteNotFoundError` when there is no INVITE and `SDPNotFoundError` when no
  INVITE carries SDP.
- `parse_sdp_media(raw_sdp)` returns the audio and video `m=` sections as
  `SDPMedia` records with `payload_types`, `rtpmap` and `fmtp`.

### `siptester.cli`, `siptester.config`, `siptester.netutil`

- `parse_args(args)` parses options (`--mode`, `--ua`, `--caller`, `--callee`,
  `--host`, `--local-ip`, `--pcap`, `--ssrc-audio`, `--ssrc-video`, `--debug`,
  `--username`, `--password`) into a validated `Config`.
- `parse_ssrc(raw)` accepts an SSRC in decimal or `0x` hex.
- `normalize_uri(raw, host_port)` turns a bare user such as `1001` into
  `sip:1001@<host>`.
- `parse_host_port`, `detect_ip_family`, `is_ip_in_family`,
  `udp_network_for_family` and `resolve_sip_target(host, port, family)` deal
  with addresses; `resolve_sip_target` picks the first address of the same
  `IPFamily` as the local address and returns a `ResolvedTarget`.

## Example

```python
from siptester.invite import find_first_invite_with_sdp, parse_sdp_media
from siptester.pcapread import extract_rtp_by_ssrc, load_pcap

packets = load_pcap("call.pcap")

for ssrc, stream in extract_rtp_by_ssrc(packets).items():
    print(f"SSRC 0x{ssrc:08x}: {len(stream)} packets")

sdp = find_first_invite_with_sdp(packets)
for section in parse_sdp_media(sdp):
    print(section.media, section.payload_types, section.rtpmap)
```

```python
from siptester.cli import parse_args, parse_ssrc

config = parse_args([
    "--caller", "1001",
    "--callee", "1002",
    "--host", "pbx.example.com:5060",
    "--local-ip", "192.0.2.10",
    "--pcap", "call.pcap",
    "--ssrc-audio", "0x11223344",
])
print(config.caller, config.callee, config.ip_family)

assert parse_ssrc("287454020") == 0x11223344
```

`parse_args` applies these rules, raising `ValueError` when one is broken:

- `--mode` must be `outbound` (the default) or `inbound`.
- `--caller`, `--host`, `--local-ip` and `--pcap` are required; `--callee` is
  required only for outbound calls.
- At least one of `--ssrc-audio` and `--ssrc-video` must be given.
- `--username` and `--password` must be given together.
- `--local-ip` must be a literal IPv4 or IPv6 address.

## Errors

| Exception | Raised when |
| --- | --- |
| `CaptureError` | a capture file cannot be opened, is malformed or holds no packets |
| `DecodeError` | `decode_packet` cannot decode a frame |
| `InviteNotFoundError` | the packets contain no INVITE |
| `SDPNotFoundError` | INVITEs were found but none carries an SDP body |
| `SSRCNotFoundError` | a requested SSRC is not present |
| `ValueError` | invalid settings, addresses or SDP without audio/video sections |

## What it does not do

This package has no command-line program and does not place or answer calls:
it sends no SIP requests (REGISTER, INVITE, ACK, BYE), negotiates no SDP
answers and does not replay RTP over the network. It covers reading captures,
extracting the streams and SDP, and validating the call settings.