"""Matchers on strings taken from the query's server metadata or environment."""

from __future__ import annotations

import os
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from dnsrules.base import QueryContext, register_quick_setup

GetStr = Callable[[QueryContext], str]
StrPredicate = Callable[[str], bool]


@dataclass(frozen=True)
class StringExpMatcher:
    """Matches when ``predicate`` accepts the string ``get_str`` yields."""

    get_str: GetStr
    predicate: StrPredicate

    def match(self, qctx: QueryContext) -> bool:
        return self.predicate(self.get_str(qctx))


def _any_of(args: Iterable[str], test: Callable[[str, str], bool]) -> StrPredicate:
    wanted = tuple(args)
    return lambda s: any(test(s, arg) for arg in wanted)


def _build_predicate(op: str, args: list[str]) -> StrPredicate:
    match op:
        case "zl":
            return lambda s: len(s) == 0
        case "eq":
            wanted = frozenset(args)
            return lambda s: s in wanted
        case "regexp":
            patterns = []
            for arg in args:
                try:
                    patterns.append(re.compile(arg))
                except re.error as exc:
                    raise ValueError(f"invalid reg expression, {exc}") from exc
            return lambda s: any(p.search(s) for p in patterns)
        case "prefix":
            return _any_of(args, str.startswith)
        case "suffix":
            return _any_of(args, str.endswith)
        case "contains":
            return _any_of(args, lambda s, sub: sub in s)
        case _:
            raise ValueError(f"invalid operator {op}")


def _build_source(name: str) -> GetStr:
    if name.startswith("$"):
        key = name[1:]
        return lambda _qctx: os.environ.get(key, "")
    match name:
        case "url_path":
            return lambda qctx: qctx.server_meta.url_path
        case "server_name":
            return lambda qctx: qctx.server_meta.server_name
        case _:
            raise ValueError(f"invalid src string name {name}")


def quick_setup_from_str(s: str) -> StringExpMatcher:
    """Build a matcher from ``"src op [string]..."``.

    ``src`` is ``url_path``, ``server_name`` or ``$ENV_KEY``; ``op`` is one of
    ``zl``, ``eq``, ``prefix``, ``suffix``, ``contains`` or ``regexp``.
    """
    fields = s.split()
    if len(fields) < 2:
        raise ValueError("not enough args")
    src, op, args = fields[0], fields[1], fields[2:]
    predicate = _build_predicate(op, args)
    return StringExpMatcher(_build_source(src), predicate)


def quick_setup(providers: Mapping[str, Any] | None, s: str) -> StringExpMatcher:
    """Quick-setup entry for the ``string_exp`` matcher."""
    return quick_setup_from_str(s)


register_quick_setup("string_exp", quick_setup)