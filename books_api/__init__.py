"""
FastAPI RESTful API for the book records service.

This package provides:
- CRUD endpoints over a single book table
- An in-memory mirror of the table for fast reads
- API key-based authentication
"""
