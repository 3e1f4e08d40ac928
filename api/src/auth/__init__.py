"""Authentication boundary: bearer token decoding and roles."""
