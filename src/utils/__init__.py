"""Shared helpers: logging, errors, caches, text processing."""
