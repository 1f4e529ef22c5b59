"""Listening-port configuration and the options that build it."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable

from avd.types import (
    DictionaryItem,
    NotImplementedFeatureError,
    OnEndAction,
    PortMode,
    Protocol,
    PublishMode,
    TransportProtocol,
)

__all__ = [
    "ListenConfigRTSP",
    "ListenConfig",
    "ListenOption",
    "DefaultRoutePath",
    "BufferDuration",
    "OnEnd",
    "PublishModeOption",
    "WaitUntilVideoTracksCount",
    "WaitUntilAudioTracksCount",
    "TransportProtocolOption",
    "PacketSize",
    "config_from_options",
]

_DEFAULT_BUFFER_DURATION = timedelta(seconds=1)


def _truncated(duration: timedelta, unit: timedelta) -> int:
    """Whole number of ``unit`` in ``duration``, truncated toward zero."""
    micros = duration // timedelta(microseconds=1)
    unit_micros = unit // timedelta(microseconds=1)
    whole = abs(micros) // unit_micros
    return -whole if micros < 0 else whole


@dataclass
class ListenConfigRTSP:
    """RTSP-specific listening settings."""

    transport_protocol: TransportProtocol = TransportProtocol.UNDEFINED
    packet_size: int = 0


@dataclass
class ListenConfig:
    """Settings of a listening port."""

    default_route_path: str = ""
    on_end_action: OnEndAction = OnEndAction.CLOSE_CONSUMERS
    publish_mode: PublishMode = PublishMode.UNDEFINED
    wait_until_video_tracks_count: int = 0
    wait_until_audio_tracks_count: int = 0
    custom_options: list[DictionaryItem] = field(default_factory=list)
    # Honoured by some protocols only.
    buffer_duration: timedelta = timedelta(0)
    max_buffer_size: int = 0
    reorder_queue_size: int = 0
    timeout: timedelta = timedelta(0)
    rtsp: ListenConfigRTSP = field(default_factory=ListenConfigRTSP)

    def effective_buffer_duration(self) -> timedelta:
        """The buffer duration, falling back to one second when unset."""
        if not self.buffer_duration:
            return _DEFAULT_BUFFER_DURATION
        return self.buffer_duration

    def dictionary_items(self, protocol: Protocol, mode: PortMode) -> list[DictionaryItem]:
        """Options for the media layer to listen with this configuration."""
        items = [DictionaryItem("listen", "1")]
        if self.max_buffer_size:
            items.append(DictionaryItem("buffer_size", str(self.max_buffer_size)))
        if self.reorder_queue_size:
            items.append(DictionaryItem("reorder_queue_size", str(self.reorder_queue_size)))
        if self.timeout:
            micros = _truncated(self.timeout, timedelta(microseconds=1))
            items.append(DictionaryItem("timeout", str(micros)))

        if protocol is Protocol.RTMP:
            millis = _truncated(self.effective_buffer_duration(), timedelta(milliseconds=1))
            items.append(DictionaryItem("rtmp_live", "live"))
            items.append(DictionaryItem("rtmp_buffer", str(millis)))
            if self.default_route_path:
                items.append(DictionaryItem("rtmp_app", self.default_route_path))
        elif protocol is Protocol.RTSP:
            items.append(DictionaryItem("rtsp_flags", "listen"))
            if self.rtsp.packet_size:
                items.append(DictionaryItem("pkt_size", str(self.rtsp.packet_size)))
            if self.rtsp.transport_protocol is TransportProtocol.UDP:
                raise NotImplementedFeatureError("UDP transport protocol for RTSP")
            items.append(DictionaryItem("rtsp_transport", str(TransportProtocol.TCP)))
        elif protocol is Protocol.SRT:
            items.append(DictionaryItem("smoother", "live"))
            items.append(DictionaryItem("transtype", "live"))

        if mode is PortMode.CONSUMERS:
            items.append(DictionaryItem("f", protocol.format_name()))

        items.extend(self.custom_options)
        return items


class ListenOption(ABC):
    """A single change to a :class:`ListenConfig`."""

    @abstractmethod
    def apply(self, config: ListenConfig) -> None:
        """Apply this option to ``config`` in place."""


def _require_non_negative(value: int, what: str) -> None:
    if value < 0:
        raise ValueError(f"{what} must not be negative: {value}")


@dataclass(frozen=True)
class DefaultRoutePath(ListenOption):
    path: str

    def apply(self, config: ListenConfig) -> None:
        config.default_route_path = self.path


@dataclass(frozen=True)
class BufferDuration(ListenOption):
    duration: timedelta

    def apply(self, config: ListenConfig) -> None:
        config.buffer_duration = self.duration


@dataclass(frozen=True)
class OnEnd(ListenOption):
    action: OnEndAction

    def apply(self, config: ListenConfig) -> None:
        config.on_end_action = self.action


@dataclass(frozen=True)
class PublishModeOption(ListenOption):
    mode: PublishMode

    def apply(self, config: ListenConfig) -> None:
        config.publish_mode = self.mode


@dataclass(frozen=True)
class WaitUntilVideoTracksCount(ListenOption):
    count: int

    def __post_init__(self) -> None:
        _require_non_negative(self.count, "video track count")

    def apply(self, config: ListenConfig) -> None:
        config.wait_until_video_tracks_count = self.count


@dataclass(frozen=True)
class WaitUntilAudioTracksCount(ListenOption):
    count: int

    def __post_init__(self) -> None:
        _require_non_negative(self.count, "audio track count")

    def apply(self, config: ListenConfig) -> None:
        config.wait_until_audio_tracks_count = self.count


@dataclass(frozen=True)
class TransportProtocolOption(ListenOption):
    protocol: TransportProtocol

    def apply(self, config: ListenConfig) -> None:
        config.rtsp.transport_protocol = self.protocol


@dataclass(frozen=True)
class PacketSize(ListenOption):
    size: int

    def __post_init__(self) -> None:
        if not 0 <= self.size <= 0xFFFF:
            raise ValueError(f"packet size out of range: {self.size}")

    def apply(self, config: ListenConfig) -> None:
        config.rtsp.packet_size = self.size


def config_from_options(options: Iterable[ListenOption]) -> ListenConfig:
    """Build a configuration by applying ``options`` in order to the defaults."""
    config = ListenConfig()
    for option in options:
        option.apply(config)
    return config