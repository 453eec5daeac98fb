"""Run configuration and its validation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import ipaddress

from .netutil import IPFamily

DEFAULT_MODE = "outbound"
DEFAULT_USER_AGENT = "sip-tester"
MODES = ("outbound", "inbound")


@dataclass
class Config:
    """Raw command-line values and the values derived from them."""

    mode: str = DEFAULT_MODE
    ua: str = DEFAULT_USER_AGENT

    caller_raw: str = ""
    callee_raw: str = ""
    host_raw: str = ""
    local_ip: str = ""
    pcap: str = ""

    ssrc_audio_raw: str = ""
    ssrc_video_raw: str = ""
    debug: bool = False
    username: str = ""
    password: str = ""

    caller: str = ""
    callee: str = ""
    host: str = ""
    port: int = 0

    local_ip_parsed: Optional[Union[ipaddress.IPv4Address, ipaddress.IPv6Address]] = None
    ip_family: Optional[IPFamily] = None

    ssrc_audio: Optional[int] = None
    ssrc_video: Optional[int] = None

    def validate_required(self) -> None:
        """Fill empty defaults and raise ValueError if a required value is missing."""
        if not self.mode:
            self.mode = DEFAULT_MODE
        if not self.ua:
            self.ua = DEFAULT_USER_AGENT
        if self.mode not in MODES:
            raise ValueError("--mode must be one of: outbound, inbound")
        if not self.caller_raw:
            raise ValueError("--caller is required")
        if self.mode == "outbound" and not self.callee_raw:
            raise ValueError("--callee is required")
        if not self.host_raw:
            raise ValueError("--host is required")
        if not self.local_ip:
            raise ValueError("--local-ip is required")
        if not self.pcap:
            raise ValueError("--pcap is required")
        if not self.ssrc_audio_raw and not self.ssrc_video_raw:
            raise ValueError("at least one of --ssrc-audio or --ssrc-video must be provided")
        if bool(self.username) != bool(self.password):
            raise ValueError("--username and --password must be provided together")