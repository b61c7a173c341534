"""ChainLens - documentation knowledge base served over MCP."""

__version__ = "0.8.0"
