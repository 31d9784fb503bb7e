"""Main entry point for the lendingdesk package."""

from lendingdesk.cli import app


if __name__ == "__main__":
    app()
