"""Domain layer — labels, node types, identifiers, and entity models.

This layer depends only on stdlib and pydantic.
It must never import from services, infrastructure, commands, or config.
"""
