"""Core logic of a distributed tracing backend: trace model, distribution, sharding and reports."""

__version__ = "0.1.0"