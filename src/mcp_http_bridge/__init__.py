"""
MCP HTTP Bridge.

Expose des endpoints HTTP et traduit chaque requête en message JSON-RPC envoyé à
un ou plusieurs processus MCP stdio supervisés.
"""

__version__ = "1.0.0"
