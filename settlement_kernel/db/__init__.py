"""Database plumbing: declarative base, engine/session helpers, immutability listeners."""
