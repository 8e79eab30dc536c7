"""Entry point for running CLI as module.

Usage:
    python -m src.cli crawl --source taipei
    python -m src.cli sources --kind web
"""

from src.cli.main import main

if __name__ == "__main__":
    main()
