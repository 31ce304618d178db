"""IntelliCode MCP - code analysis tools, workflows and a file-backed memory bank over MCP."""

__version__ = "2.1.0"
