"""Opening client and listening TCP sockets without regard to address family."""

from __future__ import annotations

import socket
from typing import Optional

from labkit.rio import LISTENQ

_NUMERICSERV = getattr(socket, "AI_NUMERICSERV", 0)
_ADDRCONFIG = getattr(socket, "AI_ADDRCONFIG", 0)


class AddressLookupError(OSError):
    """Raised when a host or port cannot be turned into socket addresses."""


def _lookup(host: Optional[str], port: str, flags: int, what: str) -> list:
    try:
        return socket.getaddrinfo(host, port, type=socket.SOCK_STREAM, flags=flags)
    except socket.gaierror as exc:
        raise AddressLookupError(f"getaddrinfo failed ({what}): {exc.strerror}") from exc


def open_clientfd(hostname: str, port: str) -> socket.socket:
    """Connect to ``hostname`` on the numeric ``port`` and return the socket.

    Every address the name resolves to is tried in turn. Raises
    ``AddressLookupError`` when the lookup fails and the last connection
    error when no address accepts the connection.
    """
    addresses = _lookup(
        hostname, str(port), _NUMERICSERV | _ADDRCONFIG, f"{hostname}:{port}"
    )
    last_error: Optional[OSError] = None
    for family, socktype, proto, _canonname, sockaddr in addresses:
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as exc:
            last_error = exc
            continue
        try:
            sock.connect(sockaddr)
        except OSError as exc:
            last_error = exc
            sock.close()
            continue
        return sock
    if last_error is not None:
        raise last_error
    raise OSError(f"no address to connect to for {hostname}:{port}")


def open_listenfd(port: str) -> socket.socket:
    """Return a socket listening on the numeric ``port`` on any local address.

    Raises ``AddressLookupError`` when the lookup fails and the last bind
    or listen error when no address can be used.
    """
    addresses = _lookup(
        None,
        str(port),
        socket.AI_PASSIVE | _ADDRCONFIG | _NUMERICSERV,
        f"port {port}",
    )
    last_error: Optional[OSError] = None
    for family, socktype, proto, _canonname, sockaddr in addresses:
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as exc:
            last_error = exc
            continue
        # Lets a restarted server bind at once instead of "Address already in use".
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(sockaddr)
        except OSError as exc:
            last_error = exc
            sock.close()
            continue
        try:
            sock.listen(LISTENQ)
        except OSError:
            sock.close()
            raise
        return sock
    if last_error is not None:
        raise last_error
    raise OSError(f"no address to listen on for port {port}")