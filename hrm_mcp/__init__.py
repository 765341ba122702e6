"""Hierarchical Reasoning MCP - two-level reasoning state machine exposed over MCP."""

__version__ = "1.0.0"
