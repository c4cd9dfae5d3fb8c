"""Task API - CRUD backend for tasks and users with Redis caching and rate limiting."""

__version__ = "1.0.0"
