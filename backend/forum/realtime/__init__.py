"""
WebSocket push channel for the forum.

Everything under this package is single-process: sessions live in memory and
fan-out goes through the in-memory channel layer.
"""
