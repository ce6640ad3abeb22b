"""Rate limit counter store adapters.

The limiter talks to an abstract counter store so deployments can run on a
shared Redis instance or, when none is configured, an in-process map.
"""
