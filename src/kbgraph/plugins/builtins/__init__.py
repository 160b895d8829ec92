"""Plugins shipped with kbgraph and registered by the store itself."""
