"""Authentication: login bridge, token endpoint client and retry policy."""
