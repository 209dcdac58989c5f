"""
Outlook Assistant MCP Server - Entry Point
==========================================
Thin wrapper that imports and runs the MCP server from the outlook_assistant package.
See outlook_assistant/server.py for the full implementation.

Usage:
    python outlook_assistant_server.py                # stdio transport (for Claude Desktop)
    python outlook_assistant_server.py --http         # HTTP transport (for remote)
    python outlook_assistant_server.py --http --port 9000
"""

from outlook_assistant.server import main

if __name__ == "__main__":
    main()
