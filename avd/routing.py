"""Sniffing route paths out of the first client packets, and building relay URLs."""

from __future__ import annotations

import struct
from urllib.parse import quote, unquote, urlsplit

from avd.types import NotImplementedFeatureError, PortMode, Protocol

__all__ = [
    "SIZE_BUFFER",
    "DEFAULT_ROUTE_PATH",
    "RTMP_CONNECT_MAGIC",
    "RouteSniffError",
    "parse_rtmp_route_path",
    "extract_route_rtmp",
    "extract_route_rtsp",
    "extract_route_path",
    "resolve_route_path",
    "url_path_for_route",
    "build_listen_url",
]

SIZE_BUFFER = 65536
"""Size of the chunks relayed between the client and the media handler."""

DEFAULT_ROUTE_PATH = "avd-input"

# AMF0: string marker + length 7 + "connect\0", then the number 1.0 and the
# start of the command object.
RTMP_CONNECT_MAGIC = (
    b"\x02\x00\x07"
    + b"connect\x00"
    + b"\x3f\xf0\x00\x00\x00\x00\x00\x00\x03"
)

_AMF_STRING = 0x02


class RouteSniffError(ValueError):
    """Raised when the route path cannot be taken from a client message."""


def _decode(raw: bytes) -> str:
    return raw.decode("utf-8", errors="surrogateescape")


def parse_rtmp_route_path(msg: bytes) -> bytes:
    """Return the ``app`` value of the RTMP ``connect`` command in ``msg``."""
    start = msg.find(RTMP_CONNECT_MAGIC)
    if start < 0:
        raise RouteSniffError("internal error: the 'connect' magic was not found")

    idx = start + len(RTMP_CONNECT_MAGIC)
    size = len(msg)
    while True:
        if idx + 2 >= size:
            raise RouteSniffError(
                f"the message was too short: cannot get the length of the key: {idx + 2} >= {size}"
            )
        (key_len,) = struct.unpack_from(">H", msg, idx)
        idx += 2

        if idx + key_len >= size:
            raise RouteSniffError(
                f"the message was too short: cannot get the key: {idx + key_len} >= {size}"
            )
        key = _decode(msg[idx : idx + key_len])
        idx += key_len

        if idx + 1 >= size:
            raise RouteSniffError(
                f"the message was too short: cannot get the the value type: "
                f"{idx + 1} >= {size} (key: '{key}')"
            )
        value_type = msg[idx]
        idx += 1

        if value_type != _AMF_STRING:
            raise RouteSniffError(
                f"we currently support only string values, but received type ID "
                f"{value_type} (key: '{key}')"
            )

        if idx + 2 >= size:
            raise RouteSniffError(
                f"the message was too short: cannot get the length of the value: "
                f"{idx + 2} >= {size} (key: '{key}')"
            )
        (value_len,) = struct.unpack_from(">H", msg, idx)
        idx += 2

        if idx + value_len >= size:
            raise RouteSniffError(
                f"the message was too short: cannot get the value: "
                f"{idx + value_len} >= {size} (key: '{key}')"
            )
        value = bytes(msg[idx : idx + value_len])
        idx += value_len

        if key == "app":
            return value


def extract_route_rtmp(msg: bytes) -> str | None:
    """The route path from an RTMP ``connect`` message, or None if ``msg`` is not one."""
    if RTMP_CONNECT_MAGIC not in msg:
        return None
    try:
        value = parse_rtmp_route_path(msg)
    except RouteSniffError as exc:
        raise RouteSniffError(
            f"unable to parse the route path from the 'connect' message: {exc}"
        ) from exc
    return _decode(value)


def extract_route_rtsp(msg: bytes) -> str:
    """The route path from the URL of an RTSP ``OPTIONS`` request."""
    parts = msg.split(b" ", 2)
    if len(parts) < 3:
        raise RouteSniffError(
            "expected the first packet to contain an 'OPTIONS' request, which consists of "
            "3 parts and headers: OPTIONS URL protocol\\r\\nHeaders, "
            f"but received '{_decode(msg)}'"
        )
    request_name, url_bytes = parts[0], parts[1]
    if request_name.upper() != b"OPTIONS":
        raise RouteSniffError(
            "expected the first packet to contain an 'OPTIONS' request, which consists of "
            "3 parts and headers: OPTIONS URL protocol\\r\\nHeaders, "
            f"but the first word is '{_decode(request_name)}'"
        )
    url_text = _decode(url_bytes)
    try:
        path = urlsplit(url_text).path
    except ValueError as exc:
        raise RouteSniffError(f"unable to parse '{url_text}' as an URL: {exc}") from exc
    return unquote(path).strip("/")


def extract_route_path(protocol: Protocol, msg: bytes) -> str | None:
    """Try to take the route path out of a client message for ``protocol``."""
    if protocol is Protocol.RTMP:
        return extract_route_rtmp(msg)
    if protocol is Protocol.RTSP:
        return extract_route_rtsp(msg)
    raise RouteSniffError(f"protocol '{protocol}' is not supported")


def resolve_route_path(route_path: str | None, default_route_path: str) -> str:
    """The sniffed route path, else the port's default, else ``avd-input``."""
    if route_path is not None:
        return route_path
    if default_route_path:
        return default_route_path
    return DEFAULT_ROUTE_PATH


def url_path_for_route(protocol: Protocol, route_path: str) -> str:
    """The URL path the media handler expects for ``route_path``."""
    if protocol is Protocol.RTMP:
        return route_path + "/"
    if protocol is Protocol.RTSP:
        return route_path
    raise ValueError(f"unsupported protocol: {protocol}")


def build_listen_url(
    protocol: Protocol, mode: PortMode, host: str, route_path: str
) -> tuple[str, str]:
    """URL for the media handler to listen at, and the stream key split off it."""
    if not protocol.is_valid():
        raise ValueError("protocol is not set")
    if protocol is Protocol.RTSP and mode is PortMode.CONSUMERS:
        raise NotImplementedFeatureError("server mode for RTSP consumers")

    words = f"{route_path}/".split("/")
    path = "/".join(words[:-1])
    key = words[-1]
    if path and not path.startswith("/"):
        path = "/" + path
    return f"{protocol}://{host}{quote(path, safe='/')}", key