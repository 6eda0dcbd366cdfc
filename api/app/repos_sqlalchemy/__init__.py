"""SQLAlchemy-backed repository implementations.

Helpers take an ``AsyncSession`` and operate on the shared database; tenant
scoping is decided by :mod:`api.app.authz` before any row is changed.
"""
