"""Read SIP/RTP packet captures, extract RTP streams and INVITE SDP, and validate SIP test call settings."""

__version__ = "0.1.0"