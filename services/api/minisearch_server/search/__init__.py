"""Search backend client and search statistics."""
