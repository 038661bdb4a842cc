import random

import dns.message
import dns.rrset
import pytest

from dnsrules import base
from dnsrules.base import QueryContext
from dnsrules.simple import (
    HasResp,
    HasWantedAns,
    RandomMatcher,
    check_env,
    env_quick_setup,
    random_quick_setup,
)


@pytest.fixture
def qctx():
    return QueryContext(query=dns.message.make_query("example.com.", "A"))


@pytest.fixture
def env(monkeypatch):
    monkeypatch.setenv("DNSRULES_SIMPLE_TEST", "abc")
    monkeypatch.delenv("DNSRULES_SIMPLE_MISSING", raising=False)


def test_check_env(env, qctx):
    assert check_env("DNSRULES_SIMPLE_TEST", "").match(qctx) is True
    assert check_env("DNSRULES_SIMPLE_TEST", "abc").match(qctx) is True
    assert check_env("DNSRULES_SIMPLE_TEST", "123").match(qctx) is False
    assert check_env("DNSRULES_SIMPLE_MISSING", "").match(qctx) is False


def test_env_quick_setup(env, qctx):
    assert env_quick_setup(None, "DNSRULES_SIMPLE_TEST").match(qctx) is True
    assert env_quick_setup(None, "DNSRULES_SIMPLE_MISSING").match(qctx) is False
    assert env_quick_setup(None, "DNSRULES_SIMPLE_MISSING DNSRULES_SIMPLE_TEST").match(qctx) is True
    assert env_quick_setup(None, "DNSRULES_SIMPLE_TEST DNSRULES_SIMPLE_MISSING").match(qctx) is False


@pytest.mark.parametrize("s", ["", "a b c"])
def test_env_quick_setup_arg_count(s):
    with pytest.raises(ValueError, match="invalid arg number"):
        env_quick_setup(None, s)


def test_random_extremes(qctx):
    always = RandomMatcher(1.0)
    never = RandomMatcher(0.0)
    assert all(always.match(qctx) for _ in range(50))
    assert not any(never.match(qctx) for _ in range(50))


def test_random_seeded_is_repeatable():
    a = RandomMatcher(0.5, random.Random(7))
    b = RandomMatcher(0.5, random.Random(7))
    assert [a.rand_bool() for _ in range(20)] == [b.rand_bool() for _ in range(20)]


def test_random_quick_setup(qctx):
    assert random_quick_setup(None, "1").match(qctx) is True
    assert random_quick_setup(None, "0").match(qctx) is False
    with pytest.raises(ValueError, match="probability is required"):
        random_quick_setup(None, "")
    with pytest.raises(ValueError, match="invalid probability"):
        random_quick_setup(None, "abc")


def test_has_resp(qctx):
    assert HasResp().match(qctx) is False
    qctx.response = dns.message.make_response(qctx.query)
    assert HasResp().match(qctx) is True


def _answer(qctx, rdtype, text):
    response = dns.message.make_response(qctx.query)
    response.answer.append(dns.rrset.from_text("example.com.", 300, "IN", rdtype, text))
    qctx.response = response


def test_has_wanted_ans(qctx):
    matcher = HasWantedAns()
    assert matcher.match(qctx) is False
    qctx.response = dns.message.make_response(qctx.query)
    assert matcher.match(qctx) is False
    _answer(qctx, "A", "192.0.2.1")
    assert matcher.match(qctx) is True


def test_has_wanted_ans_type_mismatch(qctx):
    _answer(qctx, "AAAA", "2001:db8::1")
    assert HasWantedAns().match(qctx) is False


def test_has_wanted_ans_class_mismatch():
    q = QueryContext(query=dns.message.make_query("example.com.", "A", rdclass="CH"))
    _answer(q, "A", "192.0.2.1")
    assert HasWantedAns().match(q) is False


def test_has_wanted_ans_no_question():
    q = QueryContext(query=dns.message.Message())
    q.response = dns.message.Message()
    q.response.answer.append(dns.rrset.from_text("example.com.", 300, "IN", "A", "192.0.2.1"))
    assert HasWantedAns().match(q) is False


def test_registered(qctx, env):
    assert base.quick_setup("has_resp", None, "").match(qctx) is False
    assert base.quick_setup("has_wanted_ans", None, "").match(qctx) is False
    assert base.quick_setup("env", None, "DNSRULES_SIMPLE_TEST").match(qctx) is True
    assert base.quick_setup("random", None, "1").match(qctx) is True