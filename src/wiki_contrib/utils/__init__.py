"""Small hashing and validation helpers."""
