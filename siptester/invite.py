"""Finding the first SDP-carrying INVITE in a capture and parsing its media."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from .pcapread import CapturedPacket

_INVITE_PREFIX = b"INVITE "
_HEADER_END = b"\r\n\r\n"
_INT_RE = re.compile(r"[+-]?[0-9]+")


class InviteNotFoundError(LookupError):
    """Raised when the capture holds no SIP INVITE."""

    def __init__(self, message: str = "sip INVITE not found") -> None:
        super().__init__(message)


class SDPNotFoundError(LookupError):
    """Raised when INVITEs exist but none carries an SDP body."""

    def __init__(self, message: str = "sdp not found in INVITE") -> None:
        super().__init__(message)


@dataclass
class SDPMedia:
    """An audio or video media section of an SDP body."""

    media: str
    payload_types: List[int] = field(default_factory=list)
    rtpmap: Dict[int, str] = field(default_factory=dict)
    fmtp: Dict[int, str] = field(default_factory=dict)


def _atoi(text: str) -> Optional[int]:
    if not _INT_RE.fullmatch(text):
        return None
    return int(text)


def find_first_invite_with_sdp(packets: Sequence[CapturedPacket]) -> str:
    """Return the SDP body of the first INVITE that carries one."""
    found_invite = False
    for index, packet in enumerate(packets):
        if not packet.decoded.payload.startswith(_INVITE_PREFIX):
            continue
        found_invite = True
        try:
            message = _assemble_sip_message(index, packets)
        except ValueError:
            continue
        sdp = _invite_sdp(message)
        if sdp is not None:
            return sdp
    if found_invite:
        raise SDPNotFoundError()
    raise InviteNotFoundError()


def _invite_sdp(message: bytes) -> Optional[str]:
    text = message.decode("utf-8", errors="replace")
    if not text.startswith("INVITE "):
        return None
    headers, sep, body = text.partition("\r\n\r\n")
    if not sep:
        return None
    headers = headers.lower()
    if "\ncontent-type: application/sdp" not in headers:
        return None
    body = body.strip()
    return body or None


def _assemble_sip_message(start: int, packets: Sequence[CapturedPacket]) -> bytes:
    """Join the payload at ``start`` with the following frames until the message is whole."""
    if not 0 <= start < len(packets):
        raise ValueError(f"invalid packet index {start}")
    assembled = bytes(packets[start].decoded.payload)
    continuations = (p.raw.data for p in packets[start + 1:])
    while True:
        framing = _message_length(assembled)
        if framing is not None and len(assembled) >= framing:
            return assembled[:framing]
        extra = next(continuations, None)
        if extra is None:
            raise ValueError(
                f"incomplete SIP INVITE message while assembling from packet index {start}"
            )
        assembled += extra


def _message_length(payload: bytes) -> Optional[int]:
    """Total message length, or None while the header block is incomplete."""
    header_end = payload.find(_HEADER_END)
    if header_end < 0:
        return None
    headers = payload[:header_end].decode("latin-1")
    return header_end + len(_HEADER_END) + _content_length(headers)


def _content_length(headers: str) -> int:
    for line in headers.split("\r\n"):
        name, sep, value = line.partition(":")
        if not sep or name.strip().lower() != "content-length":
            continue
        value = value.strip()
        length = _atoi(value)
        if length is None or length < 0:
            raise ValueError(f'invalid Content-Length "{value}"')
        return length
    raise ValueError("missing Content-Length header")


def parse_sdp_media(raw_sdp: str) -> List[SDPMedia]:
    """Parse the audio and video media sections with their rtpmap and fmtp attributes."""
    media: List[SDPMedia] = []
    current: Optional[SDPMedia] = None
    for line in raw_sdp.split("\n"):
        line = line.removesuffix("\r").strip()
        if not line:
            continue
        if line.startswith("m="):
            current = _parse_media_line(line[2:])
            if current is not None:
                media.append(current)
            continue
        if current is None or not line.startswith("a="):
            continue
        attr = line[2:]
        for prefix, target in (("rtpmap:", current.rtpmap), ("fmtp:", current.fmtp)):
            if attr.startswith(prefix):
                parsed = _parse_pt_attribute(attr[len(prefix):])
                if parsed is not None:
                    target[parsed[0]] = parsed[1]
    if not media:
        raise ValueError("no audio/video media sections found")
    return media


def _parse_media_line(value: str) -> Optional[SDPMedia]:
    fields = value.split()
    if len(fields) < 4 or fields[0] not in ("audio", "video"):
        return None
    payload_types = [pt for pt in map(_atoi, fields[3:]) if pt is not None]
    return SDPMedia(media=fields[0], payload_types=payload_types)


def _parse_pt_attribute(value: str) -> Optional[Tuple[int, str]]:
    value = value.strip()
    space = value.find(" ")
    if space <= 0:
        return None
    pt = _atoi(value[:space].strip())
    if pt is None:
        return None
    return pt, value[space + 1:].strip()