"""
Core package — cross-cutting concerns.

Modules:
    config      — environment variables & settings
    logging     — structured JSON / pretty logging
    errors      — exception hierarchy & handlers
    middleware  — request logging & correlation IDs
    database    — async SQLAlchemy engine
    identity    — authenticated caller resolution
    templating  — Jinja2 page rendering
    health      — health check aggregation
"""
