"""Command-line parsing into a validated Config."""

from __future__ import annotations

import argparse
import ipaddress
import string
import sys
from typing import NoReturn, Optional, Sequence

from .config import DEFAULT_MODE, DEFAULT_USER_AGENT, Config
from .netutil import detect_ip_family, parse_host_port

_HEX_DIGITS = frozenset(string.hexdigits)


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        raise ValueError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="sip-tester", allow_abbrev=False)

    def option(name: str, help_text: str, default: str = "") -> None:
        parser.add_argument(
            f"--{name}", f"-{name}", dest=name.replace("-", "_"), default=default, help=help_text
        )

    option("mode", "call mode: outbound|inbound", DEFAULT_MODE)
    option("ua", "SIP User-Agent header value", DEFAULT_USER_AGENT)
    option("caller", "caller SIP URI or user")
    option("callee", "callee SIP URI or user")
    option("host", "remote SIP host:port")
    option("local-ip", "local interface IP (literal)")
    option("pcap", "pcap file path")
    option("ssrc-audio", "audio SSRC (decimal or hex, e.g. 0x11223344)")
    option("ssrc-video", "video SSRC (decimal or hex, e.g. 0x11223344)")
    parser.add_argument("--debug", "-debug", action="store_true", help="enable debug output")
    option("username", "SIP digest auth username")
    option("password", "SIP digest auth password")
    return parser


def _parse_literal_ip(text: str):
    if not text or "%" in text:
        return None
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def parse_args(args: Optional[Sequence[str]] = None) -> Config:
    """Parse command-line arguments and return a validated Config."""
    argv = list(sys.argv[1:] if args is None else args)
    ns = _build_parser().parse_args(argv)

    cfg = Config(
        mode=ns.mode,
        ua=ns.ua,
        caller_raw=ns.caller,
        callee_raw=ns.callee,
        host_raw=ns.host,
        local_ip=ns.local_ip,
        pcap=ns.pcap,
        ssrc_audio_raw=ns.ssrc_audio,
        ssrc_video_raw=ns.ssrc_video,
        debug=ns.debug,
        username=ns.username,
        password=ns.password,
    )
    cfg.validate_required()

    cfg.host, cfg.port = parse_host_port(cfg.host_raw)

    try:
        cfg.caller = normalize_uri(cfg.caller_raw, cfg.host_raw)
    except ValueError as err:
        raise ValueError(f"invalid caller: {err}") from err

    if cfg.callee_raw:
        try:
            cfg.callee = normalize_uri(cfg.callee_raw, cfg.host_raw)
        except ValueError as err:
            raise ValueError(f"invalid callee: {err}") from err

    ip = _parse_literal_ip(cfg.local_ip)
    if ip is None:
        raise ValueError("--local-ip must be a literal IP address")
    cfg.local_ip_parsed = ip
    try:
        cfg.ip_family = detect_ip_family(ip)
    except ValueError as err:
        raise ValueError(f"detect local-ip family: {err}") from err

    for flag, raw, attr in (
        ("--ssrc-audio", cfg.ssrc_audio_raw, "ssrc_audio"),
        ("--ssrc-video", cfg.ssrc_video_raw, "ssrc_video"),
    ):
        if raw:
            try:
                setattr(cfg, attr, parse_ssrc(raw))
            except ValueError as err:
                raise ValueError(f"invalid {flag}: {err}") from err

    return cfg


def parse_ssrc(raw: str) -> int:
    """Parse an SSRC given in decimal or as ``0x``-prefixed hex."""
    raw = raw.strip()
    value = raw
    hexadecimal = raw.startswith(("0x", "0X"))
    if hexadecimal:
        value = raw[2:]
    if not value:
        raise ValueError("empty value")

    if hexadecimal:
        valid = all(ch in _HEX_DIGITS for ch in value)
    else:
        valid = value.isascii() and value.isdigit()
    if not valid or int(value, 16 if hexadecimal else 10) > 0xFFFFFFFF:
        raise ValueError("must be a valid uint32 decimal or hex")
    return int(value, 16 if hexadecimal else 10)


def normalize_uri(raw: str, host_port: str) -> str:
    """Turn a bare user into ``sip:user@host``; leave SIP URIs untouched."""
    if raw.startswith("sip:"):
        return raw
    try:
        host, _ = parse_host_port(host_port)
    except ValueError as err:
        raise ValueError(f"normalize URI: {err}") from err
    return f"sip:{raw}@{host}"