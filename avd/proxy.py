"""Relaying a client connection to a local media handler, sniffing the route on the way."""

from __future__ import annotations

import logging
import selectors
import socket
import threading
from typing import Callable

from avd.routing import (
    SIZE_BUFFER,
    RouteSniffError,
    extract_route_path,
    resolve_route_path,
)
from avd.types import NotImplementedFeatureError, PortMode, Protocol

__all__ = ["RelayError", "send_all", "ProxiedConnection"]

_log = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1
_CLIENT = "client"
_UPSTREAM = "upstream"


class RelayError(Exception):
    """Raised when relaying between the client and the media handler fails."""


def send_all(dst: socket.socket, data: bytes) -> None:
    """Write all of ``data`` to ``dst``."""
    try:
        dst.sendall(data)
    except OSError as exc:
        raise RelayError(f"unable to write to the client: {exc}") from exc


def _format_addr(getter: Callable[[], object]) -> str:
    try:
        addr = getter()
    except OSError:
        return "?"
    if isinstance(addr, tuple):
        return f"{addr[0]}:{addr[1]}"
    if isinstance(addr, bytes):
        return addr.decode("utf-8", errors="replace")
    return str(addr)


class ProxiedConnection:
    """A client connection relayed to the media handler listening on ``upstream``.

    ``on_route`` is called with the route path once it is sniffed from the
    client's traffic, before the message carrying it is passed on.
    """

    def __init__(
        self,
        client: socket.socket,
        upstream: socket.socket,
        protocol: Protocol,
        mode: PortMode,
        default_route_path: str = "",
        on_route: Callable[[str], None] | None = None,
    ) -> None:
        self.protocol = protocol
        self.mode = mode
        self.default_route_path = default_route_path
        self.on_route = on_route
        self._client: socket.socket | None = client
        self._upstream: socket.socket | None = upstream
        self._sniffed_route: str | None = None
        self._lock = threading.Lock()
        self._closed = threading.Event()

    def __enter__(self) -> "ProxiedConnection":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def route_path(self) -> str:
        """The sniffed route path, else the port's default, else ``avd-input``."""
        return resolve_route_path(self._sniffed_route, self.default_route_path)

    def describe(self) -> str:
        """A short human-readable description of the connection."""
        head = f"{str(self.protocol).upper()}[{self.mode}]"
        unknown = f"{head}(?->?->?->?)"
        if not self._lock.acquire(blocking=False):
            return unknown
        try:
            client, upstream = self._client, self._upstream
            if client is None or upstream is None:
                return unknown
            parts = (
                _format_addr(client.getpeername),
                _format_addr(client.getsockname),
                _format_addr(upstream.getsockname),
                _format_addr(upstream.getpeername),
            )
        finally:
            self._lock.release()
        return f"{head}({'->'.join(parts)})"

    def __str__(self) -> str:
        return self.describe()

    def negotiate(self) -> str:
        """Relay traffic until the client names its route; return that route path."""
        if self.protocol not in (Protocol.RTMP, Protocol.RTSP):
            raise NotImplementedFeatureError(
                f"negotiation for protocol '{self.protocol}'"
            )
        route = self._relay(sniff=True)
        assert route is not None
        return route

    def forward(self) -> None:
        """Relay traffic both ways until either side closes its end."""
        self._relay(sniff=False)

    def close(self) -> None:
        """Close both sockets; closing twice is harmless."""
        with self._lock:
            self._closed.set()
            errors: list[str] = []
            for name, sock in (("AVConn", self._upstream), ("Conn", self._client)):
                if sock is None:
                    continue
                try:
                    sock.close()
                except OSError as exc:
                    errors.append(f"unable to close the {name}: {exc}")
            self._upstream = None
            self._client = None
        if errors:
            raise RelayError("; ".join(errors))

    def _sockets(self) -> tuple[socket.socket, socket.socket]:
        with self._lock:
            if self._client is None or self._upstream is None:
                raise RelayError("the connection is closed")
            return self._client, self._upstream

    @staticmethod
    def _recv(sock: socket.socket, who: str) -> bytes:
        try:
            return sock.recv(SIZE_BUFFER)
        except OSError as exc:
            raise RelayError(f"unable to read from {who}: {exc}") from exc

    def _sniff(self, chunk: bytes) -> str | None:
        try:
            return extract_route_path(self.protocol, chunk)
        except RouteSniffError as exc:
            raise RelayError(f"unable to snoop the route path: {exc}") from exc

    def _relay(self, sniff: bool) -> str | None:
        client, upstream = self._sockets()
        with selectors.DefaultSelector() as selector:
            selector.register(upstream, selectors.EVENT_READ, _UPSTREAM)
            selector.register(client, selectors.EVENT_READ, _CLIENT)
            while True:
                if self._closed.is_set():
                    raise RelayError("the connection was closed")
                try:
                    events = selector.select(timeout=_POLL_INTERVAL)
                except (OSError, ValueError) as exc:
                    if self._closed.is_set():
                        raise RelayError("the connection was closed") from exc
                    raise RelayError(f"unable to wait for traffic: {exc}") from exc

                for key, _ in events:
                    if key.data == _UPSTREAM:
                        chunk = self._recv(upstream, "the (libav-)server")
                        if not chunk:
                            if sniff:
                                raise RelayError("unable to read from the (libav-)server: EOF")
                            _log.debug("EOF from the (libav-)server")
                            return None
                        send_all(client, chunk)
                        continue

                    chunk = self._recv(client, "the client")
                    if not chunk:
                        if sniff:
                            raise RelayError("unable to read from the client: EOF")
                        _log.debug("EOF from the client")
                        return None
                    if sniff:
                        route = self._sniff(chunk)
                        if route is not None:
                            self._sniffed_route = route
                            _log.debug("routePath == '%s'", route)
                            if self.on_route is not None:
                                self.on_route(route)
                            send_all(upstream, chunk)
                            return route
                    send_all(upstream, chunk)