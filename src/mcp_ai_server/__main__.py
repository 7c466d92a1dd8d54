"""Allow ``python -m mcp_ai_server``."""

import sys

from mcp_ai_server.cli import main

sys.exit(main())
