"""Vendor adapters and the normalized chat completion contract."""
