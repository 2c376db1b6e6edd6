"""
Funcbase: declarative multi-step CRUD functions over SQL tables.

A function is a named, ordered list of insert/update/fetch/delete steps that
is validated once and exposed as a single HTTP endpoint.
"""

__version__ = "0.1.0"
