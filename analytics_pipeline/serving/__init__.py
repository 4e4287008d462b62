"""
Serving Layer Module

Health, metrics and event tracking endpoints.
"""
