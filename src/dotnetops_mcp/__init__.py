"""dotnetops MCP Server - build, test and package .NET projects via MCP."""

__version__ = "0.1.0"
