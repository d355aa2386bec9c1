"""
Dashboard aggregates over the catalog (read-only).
"""
