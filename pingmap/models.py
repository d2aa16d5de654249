# pingmap/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import ipaddress

from pingmap.sweep.hilbert import hilbert_side

if TYPE_CHECKING:
    from pingmap.sweep.canvas import Canvas


class InvalidBlockError(ValueError):
    """Raised when a CIDR string or prefix length cannot describe a sweepable block."""


class ProbeOutcome(str, Enum):
    REPLY = "reply"            # echo reply from the target
    ANOMALOUS = "anomalous"    # target answered with another ICMP type
    NO_REPLY = "no_reply"      # every attempt hit the deadline
    ERROR = "error"            # socket / send failures exhausted the retries
    MALFORMED = "malformed"    # reply could not be parsed

    @property
    def reachable(self) -> bool:
        return self in (ProbeOutcome.REPLY, ProbeOutcome.ANOMALOUS)


@dataclass(frozen=True)
class AddressTask:
    address: str   # "a.b.c.d"
    offset: int    # position inside the block, 0 is the network address


@dataclass(frozen=True)
class ProbeResult:
    offset: int
    address: str
    outcome: ProbeOutcome
    attempts: int = 1

    @property
    def reachable(self) -> bool:
        return self.outcome.reachable


MIN_SPAN = 2
MAX_SPAN = 32


@dataclass(frozen=True)
class Block:
    """
    An IPv4 block given by its masked network address (as an int) and prefix length.

    The block holds ``size`` addresses; offsets 1 .. size-1 are swept,
    offset 0 (the network address itself) never is.
    """
    network: int
    span: int

    def __post_init__(self):
        if not MIN_SPAN <= self.span <= MAX_SPAN:
            raise InvalidBlockError(
                f"Prefix length must be between {MIN_SPAN} and {MAX_SPAN}, got /{self.span}"
            )
        if not 0 <= self.network <= 0xFFFFFFFF:
            raise InvalidBlockError(f"Network address out of IPv4 range: {self.network}")
        if self.network & (self.size - 1):
            raise InvalidBlockError(
                f"{ipaddress.IPv4Address(self.network)} has host bits set for /{self.span}"
            )

    @classmethod
    def from_cidr(cls, text: str) -> "Block":
        """
        Parse "a.b.c.d/n". The prefix is mandatory and host bits are masked off,
        so "10.1.2.3/16" sweeps 10.1.0.0/16.
        """
        text = text.strip()
        if "/" not in text:
            raise InvalidBlockError(
                f"Please input a valid IPv4 address with range, e.g. 127.0.0.1/8 (got {text!r})"
            )
        try:
            net = ipaddress.IPv4Network(text, strict=False)
        except (ipaddress.AddressValueError, ipaddress.NetmaskValueError, ValueError) as e:
            raise InvalidBlockError(f"Invalid IPv4 CIDR {text!r}: {e}") from e
        return cls(network=int(net.network_address), span=net.prefixlen)

    @property
    def size(self) -> int:
        return 1 << (32 - self.span)

    @property
    def host_count(self) -> int:
        return self.size - 1

    @property
    def cidr(self) -> str:
        return f"{ipaddress.IPv4Address(self.network)}/{self.span}"

    @property
    def canvas_side(self) -> int:
        # fixed sizing carried over from the first renderer, not proportional to the block
        return 2 * self.span

    @property
    def hilbert_side(self) -> int:
        return hilbert_side(self.size)

    def address(self, offset: int) -> str:
        if not 0 <= offset < self.size:
            raise ValueError(f"Offset {offset} outside block {self.cidr}")
        return str(ipaddress.IPv4Address(self.network + offset))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: float = 0.5   # seconds before the 2nd setup-error attempt, doubled afterwards

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.backoff < 0:
            raise ValueError(f"backoff must be >= 0, got {self.backoff}")

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    def delay(self, attempts: int) -> float:
        return self.backoff * (2 ** (attempts - 1))


@dataclass(frozen=True)
class SweepConfig:
    pool_size: int = 20
    queue_capacity: int = 10
    probe_timeout: float = 3.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    privileged: bool = True
    fit_canvas: bool = False

    def __post_init__(self):
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be >= 1, got {self.pool_size}")
        if self.queue_capacity < 1:
            raise ValueError(f"queue_capacity must be >= 1, got {self.queue_capacity}")
        if self.probe_timeout <= 0:
            raise ValueError(f"probe_timeout must be > 0, got {self.probe_timeout}")

    def canvas_side(self, block: Block) -> int:
        return block.hilbert_side if self.fit_canvas else block.canvas_side


@dataclass
class SweepSummary:
    block: Block
    canvas: "Canvas"
    outcomes: dict[ProbeOutcome, int]
    clipped: int = 0
    elapsed: float = 0.0

    @property
    def reachable(self) -> int:
        return sum(n for outcome, n in self.outcomes.items() if outcome.reachable)

    @property
    def total(self) -> int:
        return sum(self.outcomes.values())

