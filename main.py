#!/usr/bin/env python3
"""MCP AI Server - main entry point.

Equivalent to the ``mcp-ai-server`` console script:

    python main.py --mode stdio --config config/config.yaml
    python main.py --mode websocket --port 8081
"""

import sys

from mcp_ai_server.cli import main

if __name__ == "__main__":
    sys.exit(main())
