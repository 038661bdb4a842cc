"""Matchers for DNS queries and responses, config file tools and server probes."""

__version__ = "0.1.0"