"""
Console feature modules live under this package.

Each module owns its routes, models and service functions, and reuses the
platform primitives (data client, LINE session, audit, storage).
"""

