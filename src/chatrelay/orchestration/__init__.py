"""Streaming orchestration: registry, channels, events and auto-titling."""
