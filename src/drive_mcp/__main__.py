"""Entry point for ``python -m drive_mcp``."""

from drive_mcp.server import main

if __name__ == "__main__":
    main()
