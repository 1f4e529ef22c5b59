"""Server configuration: ports, endpoints and forwardings, stored as YAML."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import IO, Any, Callable, TypeVar

import yaml

from avd.listen_config import (
    DefaultRoutePath,
    ListenOption,
    OnEnd,
    PublishModeOption,
    TransportProtocolOption,
    WaitUntilAudioTracksCount,
    WaitUntilVideoTracksCount,
)
from avd.types import (
    DictionaryItem,
    OnEndAction,
    PortMode,
    Protocol,
    PublishMode,
    TransportProtocol,
)

__all__ = [
    "ConfigError",
    "RTMPConfig",
    "RTSPConfig",
    "MPEGTSConfig",
    "WaitUntilConfig",
    "DestinationLocal",
    "Destination",
    "TrackConfig",
    "RecoderConfig",
    "ForwardConfig",
    "EndpointConfig",
    "ProtocolHandlerConfig",
    "PortConfig",
    "Config",
    "default_config",
]


class ConfigError(ValueError):
    """Raised when a configuration cannot be parsed or is inconsistent."""


_E = TypeVar("_E")
_T = TypeVar("_T")


def _mapping(data: Any, what: str) -> Mapping:
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigError(f"{what}: expected a mapping, got {type(data).__name__}")
    return data


def _sequence(data: Any, what: str) -> list:
    if data is None:
        return []
    if not isinstance(data, list):
        raise ConfigError(f"{what}: expected a list, got {type(data).__name__}")
    return data


def _string(data: Any, what: str) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    if isinstance(data, (int, float)) and not isinstance(data, bool):
        return str(data)
    raise ConfigError(f"{what}: expected a string, got {type(data).__name__}")


def _count(data: Any, what: str) -> int:
    if data is None:
        return 0
    if isinstance(data, bool) or not isinstance(data, int):
        raise ConfigError(f"{what}: expected an integer, got {type(data).__name__}")
    if data < 0:
        raise ConfigError(f"{what}: must not be negative: {data}")
    return data


def _int_list(data: Any, what: str) -> list[int]:
    items = _sequence(data, what)
    for item in items:
        if isinstance(item, bool) or not isinstance(item, int):
            raise ConfigError(f"{what}: expected integers, got {item!r}")
    return list(items)


def _enum(enum_cls: type[_E], data: Any, what: str, default: _E) -> _E:
    if data is None:
        return default
    if not isinstance(data, str):
        raise ConfigError(f"{what}: expected a string, got {type(data).__name__}")
    try:
        return enum_cls.from_name(data)  # type: ignore[attr-defined]
    except ValueError as exc:
        raise ConfigError(f"{what}: {exc}") from exc


def _list_of(data: Any, what: str, load: Callable[[Any], _T]) -> list[_T]:
    return [load(item) for item in _sequence(data, what)]


def _dump_items(items: list[DictionaryItem]) -> list[dict[str, str]]:
    return [{"key": item.key, "value": item.value} for item in items]


def _load_item(data: Any) -> DictionaryItem:
    raw = _mapping(data, "custom option")
    return DictionaryItem(
        key=_string(raw.get("key"), "custom option key"),
        value=_string(raw.get("value"), "custom option value"),
    )


@dataclass
class RTMPConfig:
    """RTMP handler settings (none so far)."""


@dataclass
class MPEGTSConfig:
    """MPEG-TS handler settings (none so far)."""


@dataclass
class RTSPConfig:
    """RTSP handler settings."""

    transport_protocol: TransportProtocol = TransportProtocol.UNDEFINED


@dataclass
class WaitUntilConfig:
    """Track counts to wait for before a stream is considered ready."""

    video_track_count: int = 0
    audio_track_count: int = 0

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.video_track_count:
            out["video_track_count"] = self.video_track_count
        if self.audio_track_count:
            out["audio_track_count"] = self.audio_track_count
        return out

    @classmethod
    def _load(cls, data: Any) -> "WaitUntilConfig":
        raw = _mapping(data, "wait_until")
        return cls(
            video_track_count=_count(raw.get("video_track_count"), "video_track_count"),
            audio_track_count=_count(raw.get("audio_track_count"), "audio_track_count"),
        )


@dataclass
class DestinationLocal:
    """A forwarding target that is another route on this server."""

    route: str = ""
    publish_mode: PublishMode = PublishMode.UNDEFINED

    def _dump(self) -> dict[str, Any]:
        return {"route": self.route, "publish_mode": str(self.publish_mode)}

    @classmethod
    def _load(cls, data: Any) -> "DestinationLocal":
        raw = _mapping(data, "local destination")
        return cls(
            route=_string(raw.get("route"), "route"),
            publish_mode=_enum(PublishMode, raw.get("publish_mode"), "publish_mode", PublishMode.UNDEFINED),
        )


@dataclass
class Destination:
    """Where a forwarding sends the stream: a remote URL or a local route."""

    url: str | None = None
    local: DestinationLocal | None = None

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.url is not None:
            out["url"] = self.url
        if self.local is not None:
            out["local"] = self.local._dump()
        return out

    @classmethod
    def _load(cls, data: Any) -> "Destination":
        raw = _mapping(data, "destination")
        url = raw.get("url")
        local = raw.get("local")
        return cls(
            url=None if url is None else _string(url, "url"),
            local=None if local is None else DestinationLocal._load(local),
        )


@dataclass
class TrackConfig:
    """How a set of input tracks is mapped to output tracks and encoded."""

    input_track_ids: list[int] = field(default_factory=list)
    output_track_ids: list[int] = field(default_factory=list)
    codec_name: str = ""
    custom_options: list[DictionaryItem] = field(default_factory=list)

    def _dump(self) -> dict[str, Any]:
        return {
            "input_track_ids": list(self.input_track_ids),
            "output_track_ids": list(self.output_track_ids),
            "codec_name": self.codec_name,
            "custom_options": _dump_items(self.custom_options),
        }

    @classmethod
    def _load(cls, data: Any) -> "TrackConfig":
        raw = _mapping(data, "track config")
        return cls(
            input_track_ids=_int_list(raw.get("input_track_ids"), "input_track_ids"),
            output_track_ids=_int_list(raw.get("output_track_ids"), "output_track_ids"),
            codec_name=_string(raw.get("codec_name"), "codec_name"),
            custom_options=_list_of(raw.get("custom_options"), "custom_options", _load_item),
        )


@dataclass
class RecoderConfig:
    """Recoding settings for the audio and video tracks of a forwarding."""

    audio_track_configs: list[TrackConfig] = field(default_factory=list)
    video_track_configs: list[TrackConfig] = field(default_factory=list)

    def _dump(self) -> dict[str, Any]:
        return {
            "audio_track_configs": [t._dump() for t in self.audio_track_configs],
            "video_track_configs": [t._dump() for t in self.video_track_configs],
        }

    @classmethod
    def _load(cls, data: Any) -> "RecoderConfig":
        raw = _mapping(data, "recoding")
        return cls(
            audio_track_configs=_list_of(raw.get("audio_track_configs"), "audio_track_configs", TrackConfig._load),
            video_track_configs=_list_of(raw.get("video_track_configs"), "video_track_configs", TrackConfig._load),
        )


@dataclass
class ForwardConfig:
    """One forwarding of an endpoint's stream."""

    destination: Destination = field(default_factory=Destination)
    recoding: RecoderConfig | None = None

    def _dump(self) -> dict[str, Any]:
        return {
            "destination": self.destination._dump(),
            "recoding": None if self.recoding is None else self.recoding._dump(),
        }

    @classmethod
    def _load(cls, data: Any) -> "ForwardConfig":
        raw = _mapping(data, "forwarding")
        recoding = raw.get("recoding")
        return cls(
            destination=Destination._load(raw.get("destination")),
            recoding=None if recoding is None else RecoderConfig._load(recoding),
        )


@dataclass
class EndpointConfig:
    """Forwardings attached to a route."""

    forwardings: list[ForwardConfig] = field(default_factory=list)

    def _dump(self) -> dict[str, Any]:
        return {"forwardings": [f._dump() for f in self.forwardings]}

    @classmethod
    def _load(cls, data: Any) -> "EndpointConfig":
        raw = _mapping(data, "endpoint")
        return cls(forwardings=_list_of(raw.get("forwardings"), "forwardings", ForwardConfig._load))


@dataclass
class ProtocolHandlerConfig:
    """Selects the protocol of a port; exactly one entry must be set."""

    rtmp: RTMPConfig | None = None
    rtsp: RTSPConfig | None = None
    mpegts: MPEGTSConfig | None = None

    def protocol(self) -> Protocol:
        """The single enabled protocol; raises ConfigError otherwise."""
        enabled = sorted(
            proto
            for proto, on in (
                (Protocol.RTMP, self.rtmp is not None),
                (Protocol.RTSP, self.rtsp is not None),
                (Protocol.MPEGTS, self.mpegts is not None),
            )
            if on
        )
        if not enabled:
            raise ConfigError("no protocols enabled")
        if len(enabled) > 1:
            names = ",".join(str(p) for p in enabled)
            raise ConfigError(f"more than one protocol enabled: {names}")
        return enabled[0]

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.rtmp is not None:
            out["rtmp"] = {}
        if self.rtsp is not None:
            out["rtsp"] = {"transport_protocol": str(self.rtsp.transport_protocol)}
        if self.mpegts is not None:
            out["mpegts"] = {}
        return out

    @classmethod
    def _load(cls, data: Any) -> "ProtocolHandlerConfig":
        raw = _mapping(data, "protocol_handler")
        rtmp, rtsp, mpegts = raw.get("rtmp"), raw.get("rtsp"), raw.get("mpegts")
        if rtmp is not None:
            _mapping(rtmp, "rtmp")
        if mpegts is not None:
            _mapping(mpegts, "mpegts")
        rtsp_cfg = None
        if rtsp is not None:
            rtsp_raw = _mapping(rtsp, "rtsp")
            rtsp_cfg = RTSPConfig(
                transport_protocol=_enum(
                    TransportProtocol,
                    rtsp_raw.get("transport_protocol"),
                    "transport_protocol",
                    TransportProtocol.UNDEFINED,
                )
            )
        return cls(
            rtmp=None if rtmp is None else RTMPConfig(),
            rtsp=rtsp_cfg,
            mpegts=None if mpegts is None else MPEGTSConfig(),
        )


@dataclass
class PortConfig:
    """A listening port."""

    address: str = ""
    mode: PortMode = PortMode.UNDEFINED
    publish_mode: PublishMode = PublishMode.UNDEFINED
    protocol_handler: ProtocolHandlerConfig = field(default_factory=ProtocolHandlerConfig)
    custom_options: list[DictionaryItem] = field(default_factory=list)
    default_route_path: str = ""
    on_end: OnEndAction = OnEndAction.CLOSE_CONSUMERS
    wait_until: WaitUntilConfig = field(default_factory=WaitUntilConfig)

    def listen_options(self) -> list[ListenOption]:
        """The listen options this port configuration stands for."""
        options: list[ListenOption] = [OnEnd(self.on_end), PublishModeOption(self.publish_mode)]
        if self.default_route_path:
            options.append(DefaultRoutePath(self.default_route_path))
        rtsp = self.protocol_handler.rtsp
        if rtsp is not None and rtsp.transport_protocol is not TransportProtocol.UNDEFINED:
            options.append(TransportProtocolOption(rtsp.transport_protocol))
        if self.wait_until.video_track_count > 0:
            options.append(WaitUntilVideoTracksCount(self.wait_until.video_track_count))
        if self.wait_until.audio_track_count > 0:
            options.append(WaitUntilAudioTracksCount(self.wait_until.audio_track_count))
        return options

    def _dump(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "address": self.address,
            "mode": str(self.mode),
            "publish_mode": str(self.publish_mode),
            "protocol_handler": self.protocol_handler._dump(),
        }
        if self.custom_options:
            out["custom_options"] = _dump_items(self.custom_options)
        out["default_route_path"] = self.default_route_path
        out["on_end"] = str(self.on_end)
        wait_until = self.wait_until._dump()
        if wait_until:
            out["wait_until"] = wait_until
        return out

    @classmethod
    def _load(cls, data: Any) -> "PortConfig":
        raw = _mapping(data, "port")
        return cls(
            address=_string(raw.get("address"), "address"),
            mode=_enum(PortMode, raw.get("mode"), "mode", PortMode.UNDEFINED),
            publish_mode=_enum(PublishMode, raw.get("publish_mode"), "publish_mode", PublishMode.UNDEFINED),
            protocol_handler=ProtocolHandlerConfig._load(raw.get("protocol_handler")),
            custom_options=_list_of(raw.get("custom_options"), "custom_options", _load_item),
            default_route_path=_string(raw.get("default_route_path"), "default_route_path"),
            on_end=_enum(OnEndAction, raw.get("on_end"), "on_end", OnEndAction.CLOSE_CONSUMERS),
            wait_until=WaitUntilConfig._load(raw.get("wait_until")),
        )


@dataclass
class Config:
    """The whole server configuration."""

    ports: list[PortConfig] = field(default_factory=list)
    endpoints: dict[str, EndpointConfig] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Plain data ready for YAML serialisation."""
        return {
            "ports": [p._dump() for p in self.ports],
            "endpoints": {path: ep._dump() for path, ep in self.endpoints.items()},
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Config":
        """Build a configuration from plain (YAML-decoded) data."""
        raw = _mapping(data, "config")
        endpoints = {
            _string(path, "endpoint path"): EndpointConfig._load(ep)
            for path, ep in _mapping(raw.get("endpoints"), "endpoints").items()
        }
        return cls(ports=_list_of(raw.get("ports"), "ports", PortConfig._load), endpoints=endpoints)

    def dumps(self) -> str:
        """Serialise to YAML text."""
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)

    @classmethod
    def loads(cls, text: str | bytes) -> "Config":
        """Parse YAML text; raises ConfigError on malformed input."""
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"unable to unmarshal the config: {exc}") from exc
        try:
            return cls.from_dict(data)
        except ConfigError as exc:
            raise ConfigError(f"unable to unmarshal the config: {exc}") from exc

    def write_to(self, stream: IO) -> int:
        """Write the YAML form to ``stream``; return the amount written."""
        text = self.dumps()
        try:
            stream.write(text)
            return len(text)
        except TypeError:
            payload = text.encode("utf-8")
            stream.write(payload)
            return len(payload)

    @classmethod
    def read_from(cls, stream: IO) -> "Config":
        """Read all of ``stream`` and parse it."""
        try:
            content = stream.read()
        except OSError as exc:
            raise ConfigError(f"unable to read: {exc}") from exc
        return cls.loads(content)


def default_config() -> Config:
    """The configuration written by ``--generate-config``."""
    all_tracks = [0, 1, 2, 3, 4, 5, 6, 7]
    return Config(
        ports=[
            PortConfig(
                address="tcp:127.0.0.1:1936",
                mode=PortMode.PUBLISHERS,
                protocol_handler=ProtocolHandlerConfig(rtmp=RTMPConfig()),
            ),
            PortConfig(
                address="tcp:0.0.0.0:1935",
                mode=PortMode.CONSUMERS,
                protocol_handler=ProtocolHandlerConfig(rtmp=RTMPConfig()),
                on_end=OnEndAction.CLOSE_CONSUMERS,
            ),
            PortConfig(
                address="tcp:0.0.0.0:1937",
                mode=PortMode.CONSUMERS,
                protocol_handler=ProtocolHandlerConfig(rtmp=RTMPConfig()),
                on_end=OnEndAction.WAIT_FOR_NEW_PUBLISHER,
            ),
            PortConfig(
                address="tcp:127.0.0.1:8555",
                mode=PortMode.PUBLISHERS,
                protocol_handler=ProtocolHandlerConfig(rtsp=RTSPConfig()),
            ),
            PortConfig(
                address="udp:127.0.0.1:4445",
                mode=PortMode.PUBLISHERS,
                default_route_path="mystream",
                protocol_handler=ProtocolHandlerConfig(mpegts=MPEGTSConfig()),
            ),
        ],
        endpoints={
            "mystream": EndpointConfig(
                forwardings=[
                    ForwardConfig(
                        recoding=RecoderConfig(
                            audio_track_configs=[
                                TrackConfig(
                                    input_track_ids=list(all_tracks),
                                    output_track_ids=[0],
                                    codec_name="copy",
                                )
                            ],
                            video_track_configs=[
                                TrackConfig(
                                    input_track_ids=list(all_tracks),
                                    output_track_ids=[1],
                                    codec_name="copy",
                                )
                            ],
                        )
                    )
                ]
            )
        },
    )