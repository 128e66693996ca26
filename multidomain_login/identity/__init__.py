"""
Identity Package
================

Read-only access to the account store shared by every domain of the ring.

Usage:
------
    from multidomain_login.identity import HttpAccountDirectory
    directory = HttpAccountDirectory(httpx.AsyncClient(base_url=url), secret)
"""

from .directory import AccountDirectory, HttpAccountDirectory, InMemoryAccountDirectory

__all__ = [
    "AccountDirectory",
    "HttpAccountDirectory",
    "InMemoryAccountDirectory",
]
