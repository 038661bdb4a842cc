"""Matchers on a query's questions, its response and its client address."""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping
from typing import Any

import dns.exception
import dns.name
import dns.rdatatype
import dns.reversename

from dnsrules.base import (
    DomainLoader,
    DomainMatcherGroup,
    DomainSetMatcher,
    IntMatcher,
    IPAddress,
    IPMatcherGroup,
    IPSetMatcher,
    QueryContext,
    int_quick_setup,
    new_domain_matcher,
    new_ip_matcher,
    parse_domain_args,
    parse_ip_args,
    register_quick_setup,
)

# ---------------------------------------------------------------------------
# Integer based matchers
# ---------------------------------------------------------------------------


def match_qclass(qctx: QueryContext, matcher: IntMatcher) -> bool:
    """Match if any question's class is in ``matcher``."""
    return any(matcher.has(int(q.rdclass)) for q in qctx.query.question)


def match_qtype(qctx: QueryContext, matcher: IntMatcher) -> bool:
    """Match if any question's type is in ``matcher``."""
    return any(matcher.has(int(q.rdtype)) for q in qctx.query.question)


def match_rcode(qctx: QueryContext, matcher: IntMatcher) -> bool:
    """Match if the response's rcode is in ``matcher``."""
    response = qctx.response
    if response is None:
        return False
    return matcher.has(int(response.rcode()))


# ---------------------------------------------------------------------------
# Domain based matchers
# ---------------------------------------------------------------------------


def match_qname(qctx: QueryContext, matcher: DomainMatcherGroup) -> bool:
    """Match if any question's name is matched."""
    return any(matcher.match(q.name.to_text()) for q in qctx.query.question)


def match_cname(qctx: QueryContext, matcher: DomainMatcherGroup) -> bool:
    """Match if any CNAME target in the response's answer is matched."""
    response = qctx.response
    if response is None:
        return False
    return any(
        matcher.match(rdata.target.to_text())
        for rrset in response.answer
        if rrset.rdtype == dns.rdatatype.CNAME
        for rdata in rrset
    )


def qname_quick_setup(
    providers: Mapping[str, Any] | None, s: str, loader: DomainLoader | None = None
) -> DomainSetMatcher:
    """Quick-setup entry for the ``qname`` matcher."""
    return new_domain_matcher(providers, parse_domain_args(s), match_qname, loader)


def cname_quick_setup(
    providers: Mapping[str, Any] | None, s: str, loader: DomainLoader | None = None
) -> DomainSetMatcher:
    """Quick-setup entry for the ``cname`` matcher."""
    return new_domain_matcher(providers, parse_domain_args(s), match_cname, loader)


# ---------------------------------------------------------------------------
# IP based matchers
# ---------------------------------------------------------------------------


def match_client_addr(qctx: QueryContext, matcher: IPMatcherGroup) -> bool:
    """Match if the client address is known and matched."""
    addr = qctx.server_meta.client_addr
    if addr is None:
        return False
    return matcher.match(addr)


def _ptr_address(name: dns.name.Name) -> IPAddress | None:
    try:
        return ipaddress.ip_address(dns.reversename.to_address(name))
    except (dns.exception.DNSException, ValueError):
        return None


def match_query_ptr_ip(qctx: QueryContext, matcher: IPMatcherGroup) -> bool:
    """Match if a PTR question's name encodes a matched address."""
    for question in qctx.query.question:
        if question.rdtype != dns.rdatatype.PTR:
            continue
        addr = _ptr_address(question.name)
        if addr is not None and matcher.match(addr):
            return True
    return False


def match_resp_addr(qctx: QueryContext, matcher: IPMatcherGroup) -> bool:
    """Match if any A or AAAA address in the response's answer is matched."""
    response = qctx.response
    if response is None:
        return False
    for rrset in response.answer:
        if rrset.rdtype not in (dns.rdatatype.A, dns.rdatatype.AAAA):
            continue
        for rdata in rrset:
            try:
                addr = ipaddress.ip_address(rdata.address)
            except ValueError:
                continue
            if matcher.match(addr):
                return True
    return False


def client_ip_quick_setup(providers: Mapping[str, Any] | None, s: str) -> IPSetMatcher:
    """Quick-setup entry for the ``client_ip`` matcher."""
    return new_ip_matcher(providers, parse_ip_args(s), match_client_addr)


def ptr_ip_quick_setup(providers: Mapping[str, Any] | None, s: str) -> IPSetMatcher:
    """Quick-setup entry for the ``ptr_ip`` matcher."""
    return new_ip_matcher(providers, parse_ip_args(s), match_query_ptr_ip)


def resp_ip_quick_setup(providers: Mapping[str, Any] | None, s: str) -> IPSetMatcher:
    """Quick-setup entry for the ``resp_ip`` matcher."""
    return new_ip_matcher(providers, parse_ip_args(s), match_resp_addr)


register_quick_setup("qclass", int_quick_setup(match_qclass))
register_quick_setup("qtype", int_quick_setup(match_qtype))
register_quick_setup("rcode", int_quick_setup(match_rcode))
register_quick_setup("qname", qname_quick_setup)
register_quick_setup("cname", cname_quick_setup)
register_quick_setup("client_ip", client_ip_quick_setup)
register_quick_setup("ptr_ip", ptr_ip_quick_setup)
register_quick_setup("resp_ip", resp_ip_quick_setup)