# dnsrules

Matchers that decide whether a DNS query (and its response) meets a rule,
a tool that writes and converts configuration files, and probes that check
how a DNS-over-TCP or DNS-over-TLS server behaves.

## Installation

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Matchers

Every matcher has a `match(qctx)` method. It takes a
`dnsrules.base.QueryContext` and returns `True` or `False`. A
`QueryContext` holds:

* `query`: a `dns.message.Message`
* `response`: a `dns.message.Message` or `None`
* `server_meta`: a `ServerMeta` with `client_addr` (an `ipaddress` address
  or `None`), `url_path` and `server_name`

### Building matchers from strings

Each matcher type has a quick-setup function that takes a mapping of
providers and an argument string. Importing `dnsrules.simple`,
`dnsrules.string_exp` and `dnsrules.query` registers their types, after
which `dnsrules.base.quick_setup(name, providers, s)` builds a matcher by
name. An unknown name raises `KeyError`.

| Type | Module | Argument string |
|------|--------|-----------------|
| `qname`, `cname` | `dnsrules.query` | `([exp] \| [$domain_set_tag] \| [&domain_list_file])...` |
| `client_ip`, `ptr_ip`, `resp_ip` | `dnsrules.query` | `([ip] \| [$ip_set_tag] \| [&ip_list_file])...` |
| `qtype`, `qclass`, `rcode` | `dnsrules.query` | whitespace-separated integers |
| `string_exp` | `dnsrules.string_exp` | `src op [string]...` |
| `env` | `dnsrules.simple` | one or two fields, see below |
| `random` | `dnsrules.simple` | a probability, parsed as a float |
| `has_resp`, `has_wanted_ans` | `dnsrules.simple` | ignored |

A token beginning with `$` names a provider in the `providers` mapping; a
token beginning with `&` is a file path; anything else is used directly.

What each type matches:

* `qname`: any question name. `cname`: any CNAME target in the answer.
* `client_ip`: the client address in `server_meta`, if known.
* `ptr_ip`: the address encoded in any PTR question name.
* `resp_ip`: any A or AAAA address in the answer.
* `qtype`, `qclass`: any question's type or class number. `rcode`: the
  response's rcode; no response never matches.
* `has_resp`: a response exists. `has_wanted_ans`: the answer holds a
  record of the first question's type and class.
* `random`: true with the given probability (`RandomMatcher`).
* `env`: built once, from the environment as it is then
  (`check_env(key, value)` compares with `value` when it is not empty).
  With one field it matches if that variable is set. With two fields the
  second field names the variable and no value is compared.

### IP sets

`$tag` in an IP argument string must name an object with a
`get_ip_matcher()` method, or `LookupError` is raised. Plain addresses and
networks, and files given with `&`, go into an `IPList`. An IP list file
holds one address or network per line; `#` starts a comment and blank
lines are skipped. IPv4-mapped IPv6 addresses are matched as IPv4.

### Domain sets

`$tag` in a domain argument string must name an object with a
`get_domain_matcher()` method, or `LookupError` is raised. Expressions and
`&` files are passed to a `loader` callable, given to `qname_quick_setup`,
`cname_quick_setup` or `new_domain_matcher`; it is called as
`loader(exps, files)` and must return a sized object with `match(name)`.
Its result is used only when it is not empty.

### String expressions

`string_exp` tests a string from the query context:

* sources: `url_path`, `server_name`, or `$NAME` for an environment
  variable (unset counts as empty)
* operators: `zl` (the string is empty), `eq`, `prefix`, `suffix`,
  `contains`, `regexp` (searched anywhere in the string); the matcher is
  true if any of the given strings matches

```python
from dnsrules.string_exp import quick_setup_from_str

matcher = quick_setup_from_str("url_path prefix /dns-query")
matched = matcher.match(qctx)
```

Fewer than two fields, an unknown operator or source, or an invalid
regular expression raises `ValueError`.

### Listener socket options

`dnsrules.socket_opts.listener_control(ListenerSocketOpts(...))` returns a
function that sets `SO_REUSEPORT`, `SO_RCVBUF` and `SO_SNDBUF` on a socket.
Options are applied on Linux only; elsewhere the socket is left unchanged.

## Command line

### Configuration files

The format follows the file extension: `json`, `toml`, `yaml` or `yml`.

Write a template configuration, replacing any existing file:

```
dnsrules config gen config.yaml
```

Convert a configuration file to another format; the output file must not
exist yet:

```
dnsrules config conv -i config.yaml -o config.json
```

The same operations are `dnsrules.config_tools.generate_config(dst)` and
`convert_config(src, dst)`.

### Server probes

Each probe takes `{tcp|tls}://server_addr[:port]`. Without a port, 53 is
used for `tcp` and 853 for `tls`. TLS connections verify the server's
certificate against the host name.

Check that the server answers three queries on one connection
(RFC 1035 connection reuse):

```
dnsrules probe conn-reuse tls://dns.example.com
```

Send two queries back to back and report whether the answers came back
out of order (RFC 7766 query pipelining):

```
dnsrules probe pipeline tcp://127.0.0.1
```

Wait until the server closes an idle connection and report how long that
took:

```
dnsrules probe idle-timeout tls://dns.example.com:853
```

Results are logged. The command exits with status 1 when a probe or a
config tool fails. In Python, `dnsrules.probe.probe_pipeline` returns
whether answers came out of order and `probe_idle_timeout` returns the
seconds waited.

## What this package does not do

* It runs no DNS server and forwards no queries. The template written by
  `config gen` describes forwarder and server entries, but nothing in this
  package reads or runs that configuration.
* It has no domain expression engine. `qname` and `cname` work with
  domain sets from providers, and with expressions or files only when you
  supply a `loader`; without one, expressions or files raise `ValueError`.