import struct

import pytest

from avd.routing import (
    DEFAULT_ROUTE_PATH,
    RTMP_CONNECT_MAGIC,
    SIZE_BUFFER,
    RouteSniffError,
    build_listen_url,
    extract_route_path,
    extract_route_rtmp,
    extract_route_rtsp,
    parse_rtmp_route_path,
    resolve_route_path,
    url_path_for_route,
)
from avd.types import NotImplementedFeatureError, PortMode, Protocol

HEADER = bytes.fromhex("030000000000 8b14 00000000".replace(" ", ""))


def amf_key(name: bytes) -> bytes:
    return struct.pack(">H", len(name)) + name


def amf_string(key: bytes, value: bytes) -> bytes:
    return amf_key(key) + b"\x02" + struct.pack(">H", len(value)) + value


def connect_packet(*entries: bytes, tail: bytes = b"\x00\x00\x09") -> bytes:
    return HEADER + RTMP_CONNECT_MAGIC + b"".join(entries) + tail


def sample_packet(app: bytes) -> bytes:
    return connect_packet(
        amf_string(b"app", app),
        amf_string(b"type", b"nonprivate"),
        amf_string(b"flashVer", b"FMLE/3.0 (compatible; Lavf61.7.100)"),
        amf_string(b"tcUrl", b"rtmp://127.0.0.1:42449/" + app),
    )


def test_connect_magic_wire_bytes():
    wire_magic = bytes.fromhex("020007636f6e6e656374003ff0000000000000" "03")
    msg = HEADER + wire_magic + amf_string(b"app", b"live") + b"\x00\x00\x09"
    assert parse_rtmp_route_path(msg) == b"live"
    assert extract_route_rtmp(msg) == "live"
    assert RTMP_CONNECT_MAGIC == wire_magic
    assert SIZE_BUFFER == 65536


def test_parse_rtmp_route_path_from_sample():
    assert parse_rtmp_route_path(sample_packet(b"test")) == b"test"


def test_extract_route_rtmp_returns_text():
    assert extract_route_rtmp(sample_packet(b"testApp")) == "testApp"


def test_extract_route_rtmp_app_not_first():
    msg = connect_packet(amf_string(b"type", b"nonprivate"), amf_string(b"app", b"live"))
    assert extract_route_rtmp(msg) == "live"


def test_extract_route_rtmp_without_connect_is_none():
    assert extract_route_rtmp(b"\x03\x00\x00\x00 some other chunk") is None


def test_parse_rtmp_without_magic_raises():
    with pytest.raises(RouteSniffError):
        parse_rtmp_route_path(b"nothing here")


def test_rtmp_non_string_value_raises():
    msg = connect_packet(amf_key(b"fpad") + b"\x01\x00" + amf_string(b"app", b"x"))
    with pytest.raises(RouteSniffError, match="only string values"):
        extract_route_rtmp(msg)


def test_rtmp_truncated_raises():
    msg = HEADER + RTMP_CONNECT_MAGIC + amf_string(b"app", b"test")
    with pytest.raises(RouteSniffError, match="too short"):
        parse_rtmp_route_path(msg)


def test_rtmp_object_end_before_app_raises():
    msg = connect_packet(amf_string(b"type", b"nonprivate"))
    with pytest.raises(RouteSniffError):
        extract_route_rtmp(msg)


def test_extract_route_rtsp():
    msg = b"OPTIONS rtsp://127.0.0.1:8555/testApp/testKey RTSP/1.0\r\nCSeq: 1\r\n\r\n"
    assert extract_route_rtsp(msg) == "testApp/testKey"


def test_extract_route_rtsp_lowercase_method():
    msg = b"options rtsp://127.0.0.1:8555/mystream/ RTSP/1.0\r\n\r\n"
    assert extract_route_rtsp(msg) == "mystream"


def test_extract_route_rtsp_wrong_method():
    with pytest.raises(RouteSniffError, match="first word is 'DESCRIBE'"):
        extract_route_rtsp(b"DESCRIBE rtsp://127.0.0.1/a RTSP/1.0\r\n\r\n")


def test_extract_route_rtsp_too_few_parts():
    with pytest.raises(RouteSniffError):
        extract_route_rtsp(b"OPTIONS")


def test_extract_route_path_dispatch():
    assert extract_route_path(Protocol.RTMP, sample_packet(b"abc")) == "abc"
    rtsp = b"OPTIONS rtsp://h/abc RTSP/1.0\r\n\r\n"
    assert extract_route_path(Protocol.RTSP, rtsp) == "abc"


@pytest.mark.parametrize("protocol", [Protocol.SRT, Protocol.MPEGTS, Protocol.UNDEFINED])
def test_extract_route_path_unsupported(protocol):
    with pytest.raises(RouteSniffError, match="not supported"):
        extract_route_path(protocol, b"anything")


def test_resolve_route_path():
    assert resolve_route_path("route", "fallback") == "route"
    assert resolve_route_path(None, "fallback") == "fallback"
    assert resolve_route_path(None, "") == DEFAULT_ROUTE_PATH
    assert DEFAULT_ROUTE_PATH == "avd-input"


def test_url_path_for_route():
    assert url_path_for_route(Protocol.RTMP, "app") == "app/"
    assert url_path_for_route(Protocol.RTSP, "app") == "app"
    with pytest.raises(ValueError):
        url_path_for_route(Protocol.SRT, "app")


def test_build_listen_url_rtmp():
    url, key = build_listen_url(Protocol.RTMP, PortMode.PUBLISHERS, "127.0.0.1:1234", "avd-input")
    assert url == "rtmp://127.0.0.1:1234/avd-input"
    assert key == ""


def test_build_listen_url_nested_route():
    url, key = build_listen_url(Protocol.RTSP, PortMode.PUBLISHERS, "127.0.0.1:99", "a/b")
    assert url == "rtsp://127.0.0.1:99/a/b"
    assert key == ""


def test_build_listen_url_errors():
    with pytest.raises(ValueError, match="protocol is not set"):
        build_listen_url(Protocol.UNDEFINED, PortMode.PUBLISHERS, "127.0.0.1:1", "x")
    with pytest.raises(NotImplementedFeatureError):
        build_listen_url(Protocol.RTSP, PortMode.CONSUMERS, "127.0.0.1:1", "x")


def test_build_listen_url_consumers_rtmp_allowed():
    url, _ = build_listen_url(Protocol.RTMP, PortMode.CONSUMERS, "h:1", "live")
    assert url.startswith("rtmp://h:1/")
    assert url.endswith("live")