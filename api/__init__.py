"""
FastAPI RESTful API for the Library Catalogue.

This module provides a REST API for:
- Author and book management with filtering, sorting and pagination
- Versioned updates that skip no-op writes
- Genre and author rollups over the catalogue
- Bearer token authentication with client and admin roles
"""
