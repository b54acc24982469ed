"""TCP, UDP and Unix socket helpers."""

from __future__ import annotations

import socket

import psutil

__all__ = [
    "connect_stream",
    "get_tcp_fast_open",
    "get_send_recv_size",
    "set_send_size",
    "set_recv_size",
    "set_no_delay",
    "set_reuse_addr",
    "set_reuse_port",
    "create_unix_socket_pair_nonblock",
    "create_unix_nonblock_socket",
    "create_ipv4_nonblock_socket",
    "create_ipv6_nonblock_socket",
    "create_udp_nonblock_socket",
    "interface_ipv4",
]


def connect_stream(host, port):
    """Connect a stream socket to the first reachable address of ``host``."""
    last_error = None
    infos = socket.getaddrinfo(host, port, socket.AF_UNSPEC, socket.SOCK_STREAM)
    for family, socktype, proto, _, address in infos:
        try:
            sock = socket.socket(family, socktype, proto)
        except OSError as exc:
            last_error = exc
            continue
        try:
            sock.connect(address)
        except OSError as exc:
            sock.close()
            last_error = exc
            continue
        return sock
    if last_error is not None:
        raise last_error
    raise OSError(f"no address for {host}:{port}")


def get_tcp_fast_open(sock):
    return sock.getsockopt(socket.IPPROTO_TCP, socket.TCP_FASTOPEN)


def get_send_recv_size(sock):
    """Return ``(send_buffer_size, recv_buffer_size)``."""
    return (
        sock.getsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF),
        sock.getsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF),
    )


def set_send_size(sock, size):
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, size)


def set_recv_size(sock, size):
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, size)


def set_no_delay(sock):
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)


def set_reuse_addr(sock):
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)


def set_reuse_port(sock):
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)


def _nonblocking(sock):
    sock.setblocking(False)
    return sock


def create_unix_socket_pair_nonblock():
    first, second = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    return _nonblocking(first), _nonblocking(second)


def create_unix_nonblock_socket():
    return _nonblocking(socket.socket(socket.AF_UNIX, socket.SOCK_STREAM))


def create_ipv4_nonblock_socket():
    return _nonblocking(socket.socket(socket.AF_INET, socket.SOCK_STREAM))


def create_ipv6_nonblock_socket():
    return _nonblocking(socket.socket(socket.AF_INET6, socket.SOCK_STREAM))


def create_udp_nonblock_socket():
    return _nonblocking(socket.socket(socket.AF_INET, socket.SOCK_DGRAM))


def interface_ipv4(name):
    """Return the IPv4 address of the first interface whose name starts with
    ``name``, or None if there is none."""
    for if_name, addresses in psutil.net_if_addrs().items():
        if not if_name.startswith(name):
            continue
        for address in addresses:
            if address.family == socket.AF_INET:
                return address.address
    return None