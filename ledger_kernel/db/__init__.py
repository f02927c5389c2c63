"""Database infrastructure: declarative base, engine and column types."""
