"""Request models for the memory store operations."""
