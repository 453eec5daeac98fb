import dataclasses

import pytest

from siptester.config import Config


def _valid(**overrides):
    base = dict(
        caller_raw="1001",
        callee_raw="1002",
        host_raw="pbx.example.com:5060",
        local_ip="192.0.2.10",
        pcap="sample.pcap",
        ssrc_audio_raw="287454020",
    )
    base.update(overrides)
    return Config(**base)


def test_empty_mode_and_ua_filled_with_defaults():
    cfg = _valid(mode="", ua="")
    cfg.validate_required()
    assert cfg.mode == "outbound"
    assert cfg.ua == "sip-tester"


def test_valid_config_unchanged():
    cfg = _valid(mode="inbound", ua="custom")
    before = dataclasses.replace(cfg)
    cfg.validate_required()
    assert cfg == before


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"mode": "foo"}, "--mode must be one of: outbound, inbound"),
        ({"caller_raw": ""}, "--caller is required"),
        ({"callee_raw": ""}, "--callee is required"),
        ({"host_raw": ""}, "--host is required"),
        ({"local_ip": ""}, "--local-ip is required"),
        ({"pcap": ""}, "--pcap is required"),
        ({"ssrc_audio_raw": ""}, "at least one of --ssrc-audio or --ssrc-video must be provided"),
        ({"username": "1001"}, "--username and --password must be provided together"),
    ],
)
def test_validation_errors(overrides, message):
    cfg = _valid(**overrides)
    with pytest.raises(ValueError) as excinfo:
        cfg.validate_required()
    assert str(excinfo.value) == message


def test_inbound_without_callee_is_valid():
    cfg = _valid(mode="inbound", callee_raw="")
    cfg.validate_required()
    assert cfg.mode == "inbound"


def test_video_ssrc_alone_and_credentials_pair_valid():
    password = "password"
    cfg = _valid(ssrc_audio_raw="", ssrc_video_raw="1", username="1001", password=password)
    cfg.validate_required()
    assert cfg.ssrc_video_raw == "1"