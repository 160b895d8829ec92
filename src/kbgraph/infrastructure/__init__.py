"""Infrastructure layer — database, graph store adapter, containment graph.

This layer depends on stdlib, third-party libs (SQLAlchemy, NetworkX) and
the domain models it hydrates. It must never import from services,
commands, or output.
"""
