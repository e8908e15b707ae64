"""Database layer: ORM models, engine helpers, and repositories."""
