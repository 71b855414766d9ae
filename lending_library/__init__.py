"""Lending Library - web service package

This package contains the application modules:
- Result type and error codes (result.py)
- Book and lend models (book.py)
- Request validation (validators.py)
- SQLite persistence (database.py)
- Lending library domain service (library.py)
- HATEOAS envelopes and error mapping (envelopes.py, errors.py)
- FastAPI application (api.py)
- Web service client and CLI (client.py, main.py)
"""
