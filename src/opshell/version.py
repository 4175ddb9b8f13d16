"""
Central version constant for opshell.
"""

__version__ = "1.0.0"
