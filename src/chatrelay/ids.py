"""Identifier generation for persisted entities and streams.

Chat and message ids are persisted, so they use full-width random hex.
Stream ids are opaque handles that only live as long as one stream.
"""

import secrets


ID_HEX_BYTES = 16
STREAM_ID_PREFIX = "stream-"


def generate_id() -> str:
    """Return a new random 32-digit hex identifier."""
    return secrets.token_hex(ID_HEX_BYTES)


def generate_stream_id() -> str:
    """Return a new opaque stream identifier."""
    return f"{STREAM_ID_PREFIX}{secrets.token_hex(8)}"
