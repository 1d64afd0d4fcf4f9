"""Shared infrastructure for aiohttp services: logging, db, workers, middleware."""
