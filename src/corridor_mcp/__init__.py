"""Cardiff–Kotara rail corridor movement tracker exposed over MCP."""

__version__ = "0.1.0"
