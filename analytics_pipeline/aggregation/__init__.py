"""
Aggregation Module

Increment table, aggregation engine, derived metrics and batch scheduler.
Import from the submodules directly.
"""
