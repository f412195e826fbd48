"""
Library Inventory Backend Package.

A REST/JSON backend tracking books, disks, authors, publishers, readers and
loans for a school or small public library.

Key Components:
- models: Pydantic models for validation and serialization
- database: SQLAlchemy schema, repositories and the loan ledger
- services: the availability engine and read-only reporting
- api: FastAPI application, staff authentication and error mapping
- config: Configuration management with pydantic-settings
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
