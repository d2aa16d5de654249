# pingmap/sweep/icmp.py

from __future__ import annotations

import os
import socket
import time
from typing import Callable, Optional

from scapy.layers.inet import ICMP, IP

from pingmap.models import ProbeOutcome
from pingmap.utils.logging import get_logger

log = get_logger(__name__)

ICMP_ECHO_REPLY = 0
ICMP_ECHO_REQUEST = 8

IP_HEADER_MIN = 20
ICMP_HEADER_LEN = 8
RECV_BUFSIZE = 1500


class ProbeError(Exception):
    """Base class for a single failed probe attempt."""


class ProbeSetupError(ProbeError):
    """Listener could not be opened, or the request could not be built or sent."""


class ProbeTimeout(ProbeError):
    """No reply from the target before the deadline."""


class ProbeParseError(ProbeError):
    """A reply arrived but is not a readable ICMP message."""


# address -> outcome; raises ProbeError subclasses on failure
Probe = Callable[[str], ProbeOutcome]


def build_echo_request(ident: int, sequence: int = 1, payload: bytes = b"") -> bytes:
    """Marshal an ICMP echo request; scapy fills in the checksum."""
    packet = ICMP(type=ICMP_ECHO_REQUEST, code=0, id=ident & 0xFFFF, seq=sequence & 0xFFFF)
    if payload:
        packet = packet / payload
    return bytes(packet)


def parse_reply(data: bytes, has_ip_header: bool = True) -> ICMP:
    """
    Dissect a received datagram into its ICMP layer.

    Raw sockets hand back the IPv4 header as well; Linux ping (datagram)
    sockets return the bare ICMP message.
    """
    minimum = (IP_HEADER_MIN if has_ip_header else 0) + ICMP_HEADER_LEN
    if len(data) < minimum:
        raise ProbeParseError(f"reply too short ({len(data)} bytes)")

    try:
        packet = IP(data) if has_ip_header else ICMP(data)
    except Exception as e:
        raise ProbeParseError(f"cannot dissect reply: {e}") from e

    if ICMP not in packet:
        raise ProbeParseError(f"reply is not ICMP: {packet.summary()}")
    return packet[ICMP]


class IcmpProber:
    """
    One ICMP echo attempt per call.

    A fresh socket is opened for each attempt and closed before returning,
    so concurrent probers never share a listener.
    """

    def __init__(
            self,
            timeout: float = 3.0,
            privileged: bool = True,
            ident: Optional[int] = None,
            sequence: int = 1,
            listen_address: str = "0.0.0.0",
            socket_factory: Callable[..., socket.socket] = socket.socket,
    ):
        self.timeout = timeout
        self.privileged = privileged
        self.ident = (os.getpid() if ident is None else ident) & 0xFFFF
        self.sequence = sequence
        self.listen_address = listen_address
        self._socket_factory = socket_factory

    def _open(self) -> socket.socket:
        kind = socket.SOCK_RAW if self.privileged else socket.SOCK_DGRAM
        try:
            sock = self._socket_factory(socket.AF_INET, kind, socket.IPPROTO_ICMP)
        except OSError as e:
            hint = " (raw sockets need root or CAP_NET_RAW)" if self.privileged else ""
            raise ProbeSetupError(f"cannot open ICMP listener: {e}{hint}") from e
        try:
            sock.bind((self.listen_address, 0))
        except OSError as e:
            sock.close()
            raise ProbeSetupError(f"cannot bind ICMP listener to {self.listen_address}: {e}") from e
        return sock

    def __call__(self, address: str) -> ProbeOutcome:
        with self._open() as sock:
            try:
                request = build_echo_request(self.ident, self.sequence)
            except Exception as e:
                raise ProbeSetupError(f"cannot marshal echo request: {e}") from e

            try:
                sent = sock.sendto(request, (address, 0))
            except OSError as e:
                raise ProbeSetupError(f"cannot send echo request to {address}: {e}") from e
            if sent != len(request):
                raise ProbeSetupError(f"short write to {address}: got {sent}; want {len(request)}")

            return self._await_reply(sock, address)

    def _await_reply(self, sock: socket.socket, address: str) -> ProbeOutcome:
        deadline = time.monotonic() + self.timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ProbeTimeout(f"no reply from {address} within {self.timeout}s")
            sock.settimeout(remaining)
            try:
                data, peer = sock.recvfrom(RECV_BUFSIZE)
            except socket.timeout:
                raise ProbeTimeout(f"no reply from {address} within {self.timeout}s") from None
            except OSError as e:
                raise ProbeSetupError(f"cannot read reply from {address}: {e}") from e

            # a raw listener sees every ICMP packet reaching the host
            if peer[0] != address:
                continue

            reply = parse_reply(data, has_ip_header=self.privileged)
            if reply.type == ICMP_ECHO_REQUEST:
                continue
            if reply.type == ICMP_ECHO_REPLY:
                # ping sockets rewrite the identifier, so only raw replies can be matched on it
                if self.privileged and reply.id != self.ident:
                    continue
                return ProbeOutcome.REPLY

            log.info(
                "Unexpected ICMP type=%s code=%s from %s; want echo reply",
                reply.type,
                reply.code,
                peer[0],
            )
            return ProbeOutcome.ANOMALOUS
