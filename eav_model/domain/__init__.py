"""
Domain layer - Families, attributes and their storage types.

This layer describes the dynamic schemas independently of the database
mapping that stores their values.
"""
