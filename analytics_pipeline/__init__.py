"""
Shop Analytics Pipeline

Streams user interaction events into per-user, per-product and per-shop
aggregate projections.
"""

__version__ = "1.0.0"
