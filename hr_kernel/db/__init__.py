"""Database infrastructure: declarative base and engine management."""
