"""
TableGraph - reactive table engine.

Typed fields over JSON row data, formula and rollup fields, a bidirectional
relation graph between rows, and a dispatcher that keeps computed values
current after every write.
"""

__version__ = "0.1.0"
