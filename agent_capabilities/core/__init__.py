"""Ambient infrastructure: environment settings and logging setup."""
