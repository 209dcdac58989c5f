"""Outlook Assistant MCP server package."""
