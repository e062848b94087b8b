"""
Catalogue core for the Library Catalogue API.

This package contains:
- Query builder, paginator and aggregation pipeline for reads
- Change detector with version-gated writes
- Credential verification, token issuance and password hashing
- Author, book and user services over MongoDB
"""

__version__ = "1.0.0"
