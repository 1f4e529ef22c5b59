"""Basic value types shared by the server: protocols, port modes and addresses."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

__all__ = [
    "DictionaryItem",
    "NotImplementedFeatureError",
    "Protocol",
    "PortMode",
    "TransportProtocol",
    "OnEndAction",
    "PublishMode",
    "supported_protocols",
    "parse_port_address",
]


@dataclass(frozen=True)
class DictionaryItem:
    """A single key/value option handed to the media layer."""

    key: str
    value: str


class NotImplementedFeatureError(Exception):
    """Raised when a requested feature is not supported."""

    def __init__(self, err: object | None = None) -> None:
        self.err = err
        super().__init__(self._message())

    def _message(self) -> str:
        if self.err is not None:
            return f"not implemented: {self.err}"
        return "not implemented"

    def __str__(self) -> str:
        return self._message()


class _LabelledEnum(IntEnum):
    """An integer enum whose members carry a textual label."""

    def __new__(cls, value: int, label: str):
        obj = int.__new__(cls, value)
        obj._value_ = value
        obj.label = label
        return obj

    def __str__(self) -> str:
        return self.label

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)

    @classmethod
    def _lookup(cls, key: str, kind: str, normalize: bool = True):
        if normalize:
            key = key.lower().strip(" ")
        for candidate in cls:
            if candidate.label == key:
                return candidate
        raise ValueError(f"unknown {kind}: '{key}'")


class Protocol(_LabelledEnum):
    """Application-level streaming protocol."""

    UNDEFINED = (0, "")
    RTMP = (1, "rtmp")
    RTSP = (2, "rtsp")
    SRT = (3, "srt")
    MPEGTS = (4, "mpegts")

    def is_valid(self) -> bool:
        return self is not Protocol.UNDEFINED

    def format_name(self) -> str:
        """Name of the container format used for this protocol."""
        return _FORMAT_NAMES.get(self, "")

    @classmethod
    def from_name(cls, text: str) -> "Protocol":
        return cls._lookup(text, "protocol")


_FORMAT_NAMES = {
    Protocol.RTMP: "flv",
    Protocol.RTSP: "rtsp",
    Protocol.SRT: "mpegts",
    Protocol.MPEGTS: "mpegts",
}


class PortMode(_LabelledEnum):
    """Whether a port accepts stream publishers or stream consumers."""

    UNDEFINED = (0, "")
    CONSUMERS = (1, "consumers")
    PUBLISHERS = (2, "publishers")

    @classmethod
    def from_name(cls, text: str) -> "PortMode":
        return cls._lookup(text, "port mode")


class TransportProtocol(_LabelledEnum):
    """Transport-level protocol."""

    UNDEFINED = (0, "")
    TCP = (1, "tcp")
    UDP = (2, "udp")

    @classmethod
    def from_name(cls, text: str) -> "TransportProtocol":
        return cls._lookup(text, "transport protocol")


class OnEndAction(_LabelledEnum):
    """What to do with consumers once a publisher goes away."""

    CLOSE_CONSUMERS = (0, "close_consumers")
    WAIT_FOR_NEW_PUBLISHER = (1, "wait_for_new_publisher")

    @classmethod
    def from_name(cls, text: str) -> "OnEndAction":
        return cls._lookup(text, "OnEndAction")


class PublishMode(_LabelledEnum):
    """How a new publisher on a route is treated relative to existing ones."""

    UNDEFINED = (0, "")
    EXCLUSIVE_TAKEOVER = (1, "exclusive-takeover")
    EXCLUSIVE_FAIL = (2, "exclusive-fail")
    SHARED_TAKEOVER = (3, "shared-takeover")

    @classmethod
    def from_name(cls, text: str) -> "PublishMode":
        return cls._lookup(text, "publish mode", normalize=False)


def supported_protocols() -> list[Protocol]:
    """Protocols that the proxied listeners can handle."""
    return [Protocol.RTMP, Protocol.RTSP]


def parse_port_address(address: str) -> tuple[str, str]:
    """Split an address like ``tcp:0.0.0.0:1935`` into transport and host.

    A bare path (starting with ``/`` or ending with ``sock``) is a unix socket.
    """
    words = address.split(":", 1)
    if len(words) == 2:
        return words[0], words[1]
    word = words[0]
    if word.startswith("/") or word.endswith("sock"):
        return "unix", word
    raise ValueError(
        f"protocol is not set in '{address}'; please use format: protocol:address; "
        "examples: unix:/tmp/mysock.sock, tcp:0.0.0.0:1935"
    )