"""Matchers on the environment, chance, and whether a response exists."""

from __future__ import annotations

import os
import random
import threading
import time
from collections.abc import Mapping
from typing import Any

from dnsrules.base import (
    MatchAlwaysFalse,
    MatchAlwaysTrue,
    QueryContext,
    register_quick_setup,
)


def check_env(key: str, value: str = "") -> MatchAlwaysTrue | MatchAlwaysFalse:
    """Match if ``key`` is in the environment, and equals ``value`` if given.

    The environment is read once, when the matcher is built.
    """
    current = os.environ.get(key)
    if current is None:
        found = False
    elif not value:
        found = True
    else:
        found = current == value
    return MatchAlwaysTrue() if found else MatchAlwaysFalse()


def env_quick_setup(
    providers: Mapping[str, Any] | None, s: str
) -> MatchAlwaysTrue | MatchAlwaysFalse:
    """Quick-setup entry for the ``env`` matcher: ``"key [value]"``."""
    fields = s.split()
    match fields:
        case [key]:
            return check_env(key, "")
        case [_, key]:
            # With two fields the second one names the variable and no
            # value is compared.
            return check_env(key, "")
        case _:
            raise ValueError(f"invalid arg number {len(fields)}")


class RandomMatcher:
    """Matches with probability ``prob``."""

    def __init__(self, prob: float, rng: random.Random | None = None) -> None:
        self.prob = prob
        self._rng = rng if rng is not None else random.Random(time.time_ns())
        self._lock = threading.Lock()

    def rand_bool(self) -> bool:
        with self._lock:
            return self._rng.random() < self.prob

    def match(self, qctx: QueryContext) -> bool:
        return self.rand_bool()


def random_quick_setup(providers: Mapping[str, Any] | None, s: str) -> RandomMatcher:
    """Quick-setup entry for the ``random`` matcher: a float probability."""
    if not s:
        raise ValueError("a float64 probability is required")
    try:
        prob = float(s)
    except ValueError as exc:
        raise ValueError(f"invalid probability, {exc}") from exc
    return RandomMatcher(prob)


class HasResp:
    """Matches when the query already has a response."""

    def match(self, qctx: QueryContext) -> bool:
        return qctx.response is not None


class HasWantedAns:
    """Matches when the response answers the first question's type and class."""

    def match(self, qctx: QueryContext) -> bool:
        if not qctx.query.question:
            return False
        response = qctx.response
        if response is None or not response.answer:
            return False
        question = qctx.query.question[0]
        return any(
            rrset.rdtype == question.rdtype and rrset.rdclass == question.rdclass
            for rrset in response.answer
        )


def _has_resp_quick_setup(providers: Any, s: str) -> HasResp:
    return HasResp()


def _has_wanted_ans_quick_setup(providers: Any, s: str) -> HasWantedAns:
    return HasWantedAns()


register_quick_setup("env", env_quick_setup)
register_quick_setup("random", random_quick_setup)
register_quick_setup("has_resp", _has_resp_quick_setup)
register_quick_setup("has_wanted_ans", _has_wanted_ans_quick_setup)