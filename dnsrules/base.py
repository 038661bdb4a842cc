"""Query context, matcher building blocks and the quick-setup registry."""

from __future__ import annotations

import ipaddress
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from os import PathLike
from typing import Any, ClassVar, Protocol, runtime_checkable

import dns.message

IPAddress = ipaddress.IPv4Address | ipaddress.IPv6Address
IPNetwork = ipaddress.IPv4Network | ipaddress.IPv6Network


@dataclass
class ServerMeta:
    """What the server knows about the client and the transport."""

    client_addr: IPAddress | None = None
    url_path: str = ""
    server_name: str = ""


@dataclass
class QueryContext:
    """A query, its response once there is one, and server metadata."""

    query: dns.message.Message
    response: dns.message.Message | None = None
    server_meta: ServerMeta = field(default_factory=ServerMeta)


class MatchAlwaysTrue:
    """A matcher that always matches."""

    result: ClassVar[bool] = True

    def match(self, qctx: QueryContext) -> bool:
        return self.result


class MatchAlwaysFalse:
    """A matcher that never matches."""

    result: ClassVar[bool] = False

    def match(self, qctx: QueryContext) -> bool:
        return self.result


# ---------------------------------------------------------------------------
# Integer matchers
# ---------------------------------------------------------------------------


class IntMatcher(frozenset):
    """A set of integers."""

    def has(self, value: int) -> bool:
        return value in self


IntMatchFunc = Callable[[QueryContext, IntMatcher], bool]


@dataclass(frozen=True)
class IntSetMatcher:
    """Matches a query by applying ``func`` to a set of integers."""

    func: IntMatchFunc
    matcher: IntMatcher

    def match(self, qctx: QueryContext) -> bool:
        return self.func(qctx, self.matcher)


def new_int_matcher(args: Iterable[int], func: IntMatchFunc) -> IntSetMatcher:
    """Build an integer set matcher from ``args``."""
    return IntSetMatcher(func, IntMatcher(args))


_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT_MIN = -(2**63)
_INT_MAX = 2**63 - 1


def parse_int_args(s: str) -> list[int]:
    """Parse whitespace separated integers."""
    numbers = []
    for i, token in enumerate(s.split()):
        if not _INT_RE.fullmatch(token):
            raise ValueError(f"arg #{i} is not an int, invalid syntax {token!r}")
        n = int(token)
        if not _INT_MIN <= n <= _INT_MAX:
            raise ValueError(f"arg #{i} is not an int, value out of range {token!r}")
        numbers.append(n)
    return numbers


def int_quick_setup(func: IntMatchFunc) -> Callable[[Any, str], IntSetMatcher]:
    """Return a quick-setup function that builds an integer matcher."""

    def setup(providers: Any, s: str) -> IntSetMatcher:
        try:
            args = parse_int_args(s)
        except ValueError as exc:
            raise ValueError(f"invalid args, {exc}") from exc
        return new_int_matcher(args, func)

    return setup


# ---------------------------------------------------------------------------
# Shared argument parsing
# ---------------------------------------------------------------------------


def _split_prefixed(s: str) -> tuple[list[str], list[str], list[str]]:
    """Split into plain expressions, ``$tag`` references and ``&file`` paths."""
    plain: list[str] = []
    tags: list[str] = []
    files: list[str] = []
    for token in s.split():
        if token.startswith("$"):
            tags.append(token[1:])
        elif token.startswith("&"):
            files.append(token[1:])
        else:
            plain.append(token)
    return plain, tags, files


def _lookup(providers: Mapping[str, Any] | None, tag: str) -> Any:
    return (providers or {}).get(tag)


# ---------------------------------------------------------------------------
# Domain matchers
# ---------------------------------------------------------------------------


@runtime_checkable
class DomainMatcher(Protocol):
    def match(self, name: str) -> bool: ...


@runtime_checkable
class DomainMatcherProvider(Protocol):
    def get_domain_matcher(self) -> DomainMatcher: ...


@dataclass
class DomainArgs:
    exps: list[str] = field(default_factory=list)
    domain_sets: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)


def parse_domain_args(s: str) -> DomainArgs:
    """Parse ``([exp] | [$domain_set_tag] | [&domain_list_file])...``."""
    exps, tags, files = _split_prefixed(s)
    return DomainArgs(exps=exps, domain_sets=tags, files=files)


@dataclass(frozen=True)
class DomainMatcherGroup:
    """Matches a name if any of its matchers does."""

    matchers: tuple[DomainMatcher, ...] = ()

    def match(self, name: str) -> bool:
        return any(m.match(name) for m in self.matchers)


DomainMatchFunc = Callable[[QueryContext, DomainMatcherGroup], bool]
DomainLoader = Callable[[Sequence[str], Sequence[str]], Any]


@dataclass(frozen=True)
class DomainSetMatcher:
    """Matches a query by applying ``func`` to a group of domain matchers."""

    func: DomainMatchFunc
    group: DomainMatcherGroup

    def match(self, qctx: QueryContext) -> bool:
        return self.func(qctx, self.group)


def new_domain_matcher(
    providers: Mapping[str, Any] | None,
    args: DomainArgs,
    func: DomainMatchFunc,
    loader: DomainLoader | None,
) -> DomainSetMatcher:
    """Build a domain matcher from named domain sets and an anonymous set.

    ``loader`` is called with the expressions and file paths and returns a
    sized domain matcher; it is kept only when it is not empty. It is needed
    only when ``args`` holds expressions or files.
    """
    matchers: list[DomainMatcher] = []
    for tag in args.domain_sets:
        provider = _lookup(providers, tag)
        if not isinstance(provider, DomainMatcherProvider):
            raise LookupError(f"cannot find domain set {tag}")
        matchers.append(provider.get_domain_matcher())

    if args.exps or args.files:
        if loader is None:
            raise ValueError("domain expressions and files need a domain loader")
        anonymous = loader(args.exps, args.files)
        if len(anonymous) > 0:
            matchers.append(anonymous)

    return DomainSetMatcher(func, DomainMatcherGroup(tuple(matchers)))


# ---------------------------------------------------------------------------
# IP matchers
# ---------------------------------------------------------------------------


@runtime_checkable
class IPMatcher(Protocol):
    def match(self, addr: IPAddress) -> bool: ...


@runtime_checkable
class IPMatcherProvider(Protocol):
    def get_ip_matcher(self) -> IPMatcher: ...


@dataclass
class IPArgs:
    ips: list[str] = field(default_factory=list)
    ip_sets: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)


def parse_ip_args(s: str) -> IPArgs:
    """Parse ``([ip] | [$ip_set_tag] | [&ip_list_file])...``."""
    ips, tags, files = _split_prefixed(s)
    return IPArgs(ips=ips, ip_sets=tags, files=files)


def _to_address(addr: IPAddress | str) -> IPAddress:
    if isinstance(addr, str):
        addr = ipaddress.ip_address(addr)
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        return addr.ipv4_mapped
    return addr


class IPList:
    """A list of IP networks. Single addresses are stored as host networks."""

    def __init__(self, networks: Iterable[IPNetwork | str] = ()) -> None:
        self._networks: list[IPNetwork] = []
        for network in networks:
            self.add(network)

    def add(self, network: IPNetwork | IPAddress | str) -> None:
        """Add a network, an address, or their text form."""
        if isinstance(network, str):
            network = network.strip()
        self._networks.append(ipaddress.ip_network(network, strict=False))

    def load_file(self, path: str | PathLike[str]) -> None:
        """Add one entry per line; ``#`` starts a comment."""
        with open(path, encoding="utf-8") as fh:
            for lineno, line in enumerate(fh, 1):
                entry = line.split("#", 1)[0].strip()
                if not entry:
                    continue
                try:
                    self.add(entry)
                except ValueError as exc:
                    raise ValueError(f"{path}: line {lineno}: {exc}") from exc

    def sort(self) -> None:
        """Sort and merge overlapping networks."""
        v4 = [n for n in self._networks if n.version == 4]
        v6 = [n for n in self._networks if n.version == 6]
        self._networks = [
            *ipaddress.collapse_addresses(v4),
            *ipaddress.collapse_addresses(v6),
        ]

    def __len__(self) -> int:
        return len(self._networks)

    def match(self, addr: IPAddress | str) -> bool:
        address = _to_address(addr)
        return any(
            net.version == address.version and address in net
            for net in self._networks
        )


@dataclass(frozen=True)
class IPMatcherGroup:
    """Matches an address if any of its matchers does."""

    matchers: tuple[IPMatcher, ...] = ()

    def match(self, addr: IPAddress) -> bool:
        return any(m.match(addr) for m in self.matchers)


IPMatchFunc = Callable[[QueryContext, IPMatcherGroup], bool]


@dataclass(frozen=True)
class IPSetMatcher:
    """Matches a query by applying ``func`` to a group of IP matchers."""

    func: IPMatchFunc
    group: IPMatcherGroup

    def match(self, qctx: QueryContext) -> bool:
        return self.func(qctx, self.group)


def new_ip_matcher(
    providers: Mapping[str, Any] | None, args: IPArgs, func: IPMatchFunc
) -> IPSetMatcher:
    """Build an IP matcher from named IP sets, addresses and files."""
    matchers: list[IPMatcher] = []
    for tag in args.ip_sets:
        provider = _lookup(providers, tag)
        if not isinstance(provider, IPMatcherProvider):
            raise LookupError(f"cannot find ipset {tag}")
        matchers.append(provider.get_ip_matcher())

    if args.ips or args.files:
        anonymous = IPList(args.ips)
        for path in args.files:
            anonymous.load_file(path)
        anonymous.sort()
        if len(anonymous) > 0:
            matchers.append(anonymous)

    return IPSetMatcher(func, IPMatcherGroup(tuple(matchers)))


# ---------------------------------------------------------------------------
# Quick-setup registry
# ---------------------------------------------------------------------------

QuickSetupFunc = Callable[[Any, str], Any]

_QUICK_SETUPS: dict[str, QuickSetupFunc] = {}


def register_quick_setup(name: str, func: QuickSetupFunc) -> None:
    """Register a matcher quick-setup function under ``name``."""
    if name in _QUICK_SETUPS:
        raise ValueError(f"duplicate matcher quick setup {name}")
    _QUICK_SETUPS[name] = func


def quick_setup(name: str, providers: Mapping[str, Any] | None, s: str) -> Any:
    """Build a matcher of type ``name`` from its argument string."""
    try:
        setup = _QUICK_SETUPS[name]
    except KeyError:
        raise KeyError(f"unknown matcher type {name}") from None
    return setup(providers, s)