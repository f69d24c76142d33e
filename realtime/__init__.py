"""
Realtime change feed: row-change capture, Redis pub/sub bus and live views.
"""
