"""Database package: ORM models, async sessions and CRUD helpers."""
