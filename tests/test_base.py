import ipaddress

import dns.message
import pytest

from dnsrules.base import (
    DomainArgs,
    DomainMatcherGroup,
    IPArgs,
    IPList,
    IPMatcherGroup,
    IntMatcher,
    MatchAlwaysFalse,
    MatchAlwaysTrue,
    QueryContext,
    ServerMeta,
    int_quick_setup,
    new_domain_matcher,
    new_int_matcher,
    new_ip_matcher,
    parse_domain_args,
    parse_int_args,
    parse_ip_args,
    quick_setup,
    register_quick_setup,
)


@pytest.fixture
def qctx():
    return QueryContext(
        query=dns.message.make_query("example.com.", "A"),
        server_meta=ServerMeta(client_addr=ipaddress.ip_address("192.0.2.7")),
    )


class _Names:
    def __init__(self, names):
        self.names = set(names)

    def __len__(self):
        return len(self.names)

    def match(self, name):
        return name in self.names


class _DomainProvider:
    def __init__(self, names):
        self.matcher = _Names(names)

    def get_domain_matcher(self):
        return self.matcher


class _IPProvider:
    def __init__(self, nets):
        self.matcher = IPList(nets)

    def get_ip_matcher(self):
        return self.matcher


def _name_in_group(qctx, group):
    return group.match(str(qctx.query.question[0].name))


def _client_in_group(qctx, group):
    return group.match(qctx.server_meta.client_addr)


def test_always_matchers(qctx):
    assert MatchAlwaysTrue().match(qctx) is True
    assert MatchAlwaysFalse().match(qctx) is False


def test_int_matcher_has():
    m = IntMatcher([1, 28])
    assert m.has(28)
    assert not m.has(2)


def test_parse_int_args_round_trip():
    assert parse_int_args(" 1  28 -3 ") == [1, 28, -3]
    assert parse_int_args("") == []


@pytest.mark.parametrize("s", ["1 x", "1 2.5", "1 1_0"])
def test_parse_int_args_rejects(s):
    with pytest.raises(ValueError, match="arg #1 is not an int"):
        parse_int_args(s)


def test_new_int_matcher_passes_set(qctx):
    m = new_int_matcher([1, 28], lambda q, ints: ints.has(q.query.question[0].rdtype))
    assert m.match(qctx) is True
    m2 = new_int_matcher([28], lambda q, ints: ints.has(q.query.question[0].rdtype))
    assert m2.match(qctx) is False


def test_int_quick_setup(qctx):
    setup = int_quick_setup(lambda q, ints: ints.has(1))
    assert setup(None, "1 5").match(qctx) is True
    assert setup(None, "5").match(qctx) is False
    with pytest.raises(ValueError, match="invalid args"):
        setup(None, "abc")


def test_parse_domain_args():
    args = parse_domain_args("a.com $set1 &list.txt b.com")
    assert args == DomainArgs(exps=["a.com", "b.com"], domain_sets=["set1"], files=["list.txt"])


def test_domain_group_match():
    group = DomainMatcherGroup((_Names(["a."]), _Names(["b."])))
    assert group.match("b.")
    assert not group.match("c.")


def test_new_domain_matcher_from_provider_and_loader(qctx):
    seen = []

    def loader(exps, files):
        seen.append((list(exps), list(files)))
        return _Names(exps)

    providers = {"set1": _DomainProvider(["other.org."])}
    args = parse_domain_args("$set1 example.com.")
    m = new_domain_matcher(providers, args, _name_in_group, loader)
    assert m.match(qctx) is True
    assert seen == [(["example.com."], [])]
    assert len(m.group.matchers) == 2


def test_new_domain_matcher_skips_empty_anonymous_set(qctx):
    m = new_domain_matcher(None, DomainArgs(files=["x"]), _name_in_group, lambda e, f: _Names([]))
    assert m.group.matchers == ()
    assert m.match(qctx) is False


def test_new_domain_matcher_missing_provider():
    with pytest.raises(LookupError, match="cannot find domain set nope"):
        new_domain_matcher({"nope": object()}, DomainArgs(domain_sets=["nope"]), _name_in_group, None)


def test_parse_ip_args():
    args = parse_ip_args("10.0.0.0/8 $lan &ips.txt")
    assert args == IPArgs(ips=["10.0.0.0/8"], ip_sets=["lan"], files=["ips.txt"])


def test_ip_list_match():
    lst = IPList(["192.168.0.0/16", "2001:db8::/32", "8.8.8.8"])
    assert lst.match("192.168.1.1")
    assert lst.match(ipaddress.ip_address("2001:db8::1"))
    assert lst.match("8.8.8.8")
    assert not lst.match("10.0.0.1")
    assert lst.match("::ffff:192.168.3.4")


def test_ip_list_sort_merges_and_keeps_matches():
    lst = IPList(["10.0.0.0/9", "10.128.0.0/9", "10.1.0.0/16"])
    lst.sort()
    assert len(lst) == 1
    assert lst.match("10.200.0.1")


def test_ip_list_load_file(tmp_path):
    path = tmp_path / "ips.txt"
    path.write_text("# comment\n10.0.0.0/8\n\n2001:db8::/32 # doc\n", encoding="utf-8")
    lst = IPList()
    lst.load_file(path)
    assert len(lst) == 2
    assert lst.match("10.1.2.3")
    assert not lst.match("11.0.0.1")


def test_ip_list_load_file_bad_entry(tmp_path):
    path = tmp_path / "bad.txt"
    path.write_text("10.0.0.0/8\nnot-an-ip\n", encoding="utf-8")
    with pytest.raises(ValueError, match="line 2"):
        IPList().load_file(path)


def test_ip_group_match():
    group = IPMatcherGroup((IPList(["10.0.0.0/8"]), IPList(["192.0.2.0/24"])))
    assert group.match(ipaddress.ip_address("192.0.2.1"))
    assert not group.match(ipaddress.ip_address("198.51.100.1"))


def test_new_ip_matcher(qctx, tmp_path):
    empty = tmp_path / "empty.txt"
    empty.write_text("", encoding="utf-8")
    providers = {"lan": _IPProvider(["192.0.2.0/24"])}
    m = new_ip_matcher(providers, parse_ip_args(f"$lan &{empty}"), _client_in_group)
    assert m.match(qctx) is True
    assert len(m.group.matchers) == 1

    m2 = new_ip_matcher(None, parse_ip_args("10.0.0.0/8"), _client_in_group)
    assert m2.match(qctx) is False


def test_new_ip_matcher_missing_provider():
    with pytest.raises(LookupError, match="cannot find ipset lan"):
        new_ip_matcher({}, IPArgs(ip_sets=["lan"]), _client_in_group)


def test_new_ip_matcher_bad_ip():
    with pytest.raises(ValueError):
        new_ip_matcher(None, IPArgs(ips=["300.1.1.1"]), _client_in_group)


def test_registry(qctx):
    register_quick_setup("test_base_always", lambda providers, s: MatchAlwaysTrue())
    assert quick_setup("test_base_always", None, "").match(qctx) is True
    with pytest.raises(ValueError, match="duplicate"):
        register_quick_setup("test_base_always", lambda providers, s: MatchAlwaysFalse())
    with pytest.raises(KeyError):
        quick_setup("test_base_no_such_type", None, "")