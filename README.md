# avd

`avd` holds the building blocks of an audio/video streaming daemon. It covers
the configuration of its listening ports and routes, the options those ports
pass to the media layer, route detection from a client's first packets, and
byte relaying between a client and a media backend.

## Modules

- **`avd.types`** holds the basic value types:
  - `Protocol` (`RTMP`, `RTSP`, `SRT`, `MPEGTS`, plus `UNDEFINED`), with
    `is_valid()` and `format_name()` (`flv` for RTMP, `rtsp` for RTSP, `mpegts`
    for SRT and MPEG-TS).
  - `PortMode` (`PUBLISHERS`, `CONSUMERS`).
  - `TransportProtocol` (`TCP`, `UDP`).
  - `OnEndAction` (`CLOSE_CONSUMERS`, `WAIT_FOR_NEW_PUBLISHER`).
  - `PublishMode` (`EXCLUSIVE_TAKEOVER`, `EXCLUSIVE_FAIL`, `SHARED_TAKEOVER`).

  Each enum can be parsed from its configuration name with `from_name`, and
  an unknown name raises `ValueError`. `str()` of a member gives that name
  back. `supported_protocols()` returns RTMP and RTSP. `parse_port_address`
  splits `tcp:0.0.0.0:1935` into `("tcp", "0.0.0.0:1935")`. It treats a bare
  path that starts with `/` or ends in `sock` as a unix socket. The module
  also defines `DictionaryItem` (a key/value option) and
  `NotImplementedFeatureError`.
- **`avd.listen_config`** holds `ListenConfig`, the settings of a listening
  port, and the options that change it:
  - `DefaultRoutePath`, `BufferDuration`, `OnEnd` and `PublishModeOption`.
  - `WaitUntilVideoTracksCount` and `WaitUntilAudioTracksCount`.
  - `TransportProtocolOption` and `PacketSize`.

  `config_from_options` applies these options in order to a default config.
  `ListenConfig.dictionary_items(protocol, mode)` returns the options a
  listening media handler needs, for example `listen=1`, `rtmp_live`,
  `rtmp_buffer`, `rtsp_flags` and `f` for consumers. RTSP over UDP raises
  `NotImplementedFeatureError`.
- **`avd.config`** holds the YAML configuration. `Config` has `ports`, a list
  of `PortConfig`, and `endpoints`, a mapping of route path to
  `EndpointConfig` with `ForwardConfig` forwardings. A forwarding has a
  `Destination`, either a URL or a local route, and an optional
  `RecoderConfig`. The module provides:
  - `default_config()`, which returns the stock setup.
  - `Config.dumps` / `Config.loads` for YAML text.
  - `Config.write_to` / `Config.read_from` for streams.
  - `Config.to_dict` / `Config.from_dict` for plain data.

  `PortConfig.listen_options()` turns a port into `ListenOption`s.
  Malformed input raises `ConfigError`.
- **`avd.configfile`** reads and writes configuration files:
  - `read_config(path)` returns `None` when the file does not exist.
  - `write_config(path, config)` first writes to `<path>.new`. It then moves
    any previous file to `<path>-backup/YYYYMMDD_HHMM.yaml` and renames the
    new file into place.
  - `expand_path` expands a leading `~`.
- **`avd.routing`** extracts the route path from a client's first packets.
  For RTMP, `extract_route_rtmp` and `parse_rtmp_route_path` read the `app`
  value of the `connect` command. For RTSP, `extract_route_rtsp` reads the
  path of the `OPTIONS` request URL. `extract_route_path` picks the right
  one for a protocol. The module also provides:
  - `resolve_route_path`, which falls back to the port default, then to
    `avd-input`.
  - `url_path_for_route`.
  - `build_listen_url`, which returns a URL and the stream key split off it.

  Unparseable messages raise `RouteSniffError`.
- **`avd.proxy`** holds `ProxiedConnection`, which relays bytes between a
  client socket and an already connected backend socket:
  - `negotiate()` relays until it detects the route path in the client's
    traffic. It calls `on_route` and returns the path.
  - `forward()` relays both ways until one side closes.
  - `close()` closes both sockets. The class also works as a context manager.

  Failures raise `RelayError`.

## Configuration

```yaml
ports:
  - address: tcp:127.0.0.1:1936
    mode: publishers
    protocol_handler:
      rtmp: {}
  - address: tcp:0.0.0.0:1935
    mode: consumers
    on_end: close_consumers
    protocol_handler:
      rtmp: {}
  - address: udp:127.0.0.1:4445
    mode: publishers
    default_route_path: mystream
    protocol_handler:
      mpegts: {}
endpoints:
  mystream:
    forwardings: []
```

Each port must enable exactly one protocol handler.
`ProtocolHandlerConfig.protocol()` raises `ConfigError` when no handler is
enabled, and also when more than one is.

## Usage

```python
from avd.config import Config, default_config
from avd.types import Protocol
from avd.routing import extract_route_path

cfg = default_config()
assert Config.loads(cfg.dumps()) == cfg

for port in cfg.ports:
    print(port.address, port.protocol_handler.protocol(), port.mode, port.listen_options())

route = extract_route_path(Protocol.RTSP, b"OPTIONS rtsp://127.0.0.1:8555/live/cam RTSP/1.0\r\n\r\n")
print(route)  # live/cam
```

## What it does not do

The package has no command-line program and no server of its own. It does
not open listening ports, route streams between publishers and consumers, or
carry out endpoint forwardings. It does not demux, mux or recode media. The
configuration only describes these things. `ProxiedConnection` relays bytes
to a backend socket that the caller must already have connected to some
media handler.