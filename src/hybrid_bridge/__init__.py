"""Stratum bridge client that harvests pool shared work as a lambda seed.

Connects to ethproxy-dialect mining pools, tracks the current work and
broadcasts derived virtual blocks back to every connected pool.
"""

__version__ = "0.1.0"
