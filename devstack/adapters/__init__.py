"""Adapters — bindings to the host's external tools and services."""
