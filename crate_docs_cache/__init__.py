"""Offline cache of Rust crate sources and rustdoc JSON documentation, with queries over items, docs and source."""

__version__ = "0.1.0"