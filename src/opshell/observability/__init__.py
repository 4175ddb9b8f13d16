"""
Logging setup and the in-memory event buffer.
"""
