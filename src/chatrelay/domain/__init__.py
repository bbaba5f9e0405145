"""Typed domain models."""
