"""Probes for DNS-over-TCP and DNS-over-TLS server behaviour."""

from __future__ import annotations

import logging
import os
import socket
import ssl
import struct
import time

import dns.exception
import dns.message
import dns.rdatatype

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"tcp": 53, "tls": 853}
_PROBE_NAME = "www.cloudflare.com."


class ProbeError(RuntimeError):
    """A probe could not complete."""


def split_scheme_and_host(addr: str) -> tuple[str, str]:
    """Split ``scheme://host`` into its parts; without a scheme it is empty."""
    scheme, sep, host = addr.partition("://")
    if not sep:
        return "", addr
    return scheme, host


def _split_host_port(hostport: str) -> tuple[str, str]:
    if hostport.startswith("["):
        end = hostport.find("]")
        if end < 0:
            raise ValueError(f"missing ']' in address {hostport}")
        rest = hostport[end + 1 :]
        if not rest.startswith(":"):
            raise ValueError(f"missing port in address {hostport}")
        return hostport[1:end], rest[1:]
    host, sep, port = hostport.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {hostport}")
    if ":" in host:
        raise ValueError(f"too many colons in address {hostport}")
    return host, port


def parse_probe_addr(addr: str) -> tuple[str, str, int]:
    """Parse ``{tcp|tls}://host[:port]`` into protocol, host and port."""
    protocol, hostport = split_scheme_and_host(addr)
    if not protocol or not hostport:
        raise ValueError(f"invalid addr {addr}")
    if protocol not in _DEFAULT_PORTS:
        raise ValueError(f"invalid protocol {protocol}")
    try:
        host, port_text = _split_host_port(hostport)
    except ValueError:
        host = hostport.removeprefix("[").removesuffix("]")
        return protocol, host, _DEFAULT_PORTS[protocol]
    if not port_text.isdigit() or int(port_text) > 65535:
        raise ValueError(f"invalid port {port_text!r} in addr {addr}")
    return protocol, host, int(port_text)


def get_conn(addr: str) -> socket.socket:
    """Open a TCP or TLS connection to the server named by ``addr``."""
    protocol, host, port = parse_probe_addr(addr)
    raw = socket.create_connection((host, port))
    if protocol == "tcp":
        return raw
    context = ssl.create_default_context()
    try:
        raw.settimeout(5)
        conn = context.wrap_socket(raw, server_hostname=host)
    except OSError as exc:
        raw.close()
        raise ProbeError(f"tls handshake failed: {exc}") from exc
    conn.settimeout(None)
    return conn


def _write_msg(sock: socket.socket, msg: dns.message.Message) -> None:
    wire = msg.to_wire()
    sock.sendall(struct.pack("!H", len(wire)) + wire)


def _recv_exact(sock: socket.socket, n: int) -> bytes:
    chunks = bytearray()
    while len(chunks) < n:
        chunk = sock.recv(n - len(chunks))
        if not chunk:
            raise ConnectionError("connection closed by peer")
        chunks += chunk
    return bytes(chunks)


def _read_msg(sock: socket.socket) -> dns.message.Message:
    (length,) = struct.unpack("!H", _recv_exact(sock, 2))
    return dns.message.from_wire(_recv_exact(sock, length))


_IO_ERRORS = (OSError, dns.exception.DNSException)


def _make_query(name: str, rdtype: dns.rdatatype.RdataType, msg_id: int) -> dns.message.Message:
    query = dns.message.make_query(name, rdtype)
    query.id = msg_id
    return query


def probe_connection_reuse(addr: str) -> None:
    """Check that the server answers several queries on one connection."""
    with get_conn(addr) as sock:
        for i in range(3):
            sock.settimeout(3)
            query = _make_query(_PROBE_NAME, dns.rdatatype.A, i)
            logger.info("sending msg #%d", i)
            try:
                _write_msg(sock, query)
            except _IO_ERRORS as exc:
                raise ProbeError(f"failed to write #{i} probe msg: {exc}") from exc
            try:
                _read_msg(sock)
            except _IO_ERRORS as exc:
                raise ProbeError(
                    f"failed to read #{i} probe msg response: {exc}"
                ) from exc
            logger.info("recevied response #%d", i)
    logger.info("server %s supports RFC 1035 connection reuse", addr)


def probe_pipeline(addr: str) -> bool:
    """Send queries back to back; return whether answers came out of order."""
    domains = [f"{os.urandom(16).hex()}.com.", "."]
    with get_conn(addr) as sock:
        for i, name in enumerate(domains):
            sock.settimeout(3)
            try:
                _write_msg(sock, _make_query(name, dns.rdatatype.NS, i))
            except _IO_ERRORS as exc:
                raise ProbeError(f"failed to write #{i} probe msg: {exc}") from exc

        out_of_order = False
        start = time.monotonic()
        for i in range(len(domains)):
            sock.settimeout(10)
            try:
                response = _read_msg(sock)
            except _IO_ERRORS as exc:
                raise ProbeError(
                    f"failed to read #{i} probe msg response: {exc}"
                ) from exc
            latency_ms = int((time.monotonic() - start) * 1000)
            logger.info("#%d response received, latency: %d ms", response.id, latency_ms)
            if response.id != i:
                out_of_order = True

    if out_of_order:
        logger.info("server supports RFC7766 query pipelining")
    else:
        logger.info(
            "no out-of-order response received in this test, "
            "server MAY NOT support RFC7766 query pipelining"
        )
    return out_of_order


def probe_idle_timeout(addr: str) -> float:
    """Wait for the server to close an idle connection; return the seconds waited."""
    with get_conn(addr) as sock:
        try:
            _write_msg(sock, _make_query(_PROBE_NAME, dns.rdatatype.A, 0))
        except _IO_ERRORS as exc:
            raise ProbeError(f"failed to write probe msg: {exc}") from exc

        logger.info(
            "testing server idle timeout, awaiting server closing the connection, "
            "this may take a while"
        )
        start = time.monotonic()
        try:
            _read_msg(sock)
        except _IO_ERRORS as exc:
            raise ProbeError(f"failed to read probe msg response: {exc}") from exc

        while True:
            try:
                _read_msg(sock)
            except _IO_ERRORS:
                break
        elapsed = time.monotonic() - start
    logger.info("connection closed by peer, it's idle timeout is %.2f sec", elapsed)
    return elapsed