"""kbgraph — collection graph service for a personal knowledge base."""

__version__ = "0.3.0"
