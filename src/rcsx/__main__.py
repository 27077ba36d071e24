"""rcsx command line entry point."""

from rcsx.cli import app

if __name__ == "__main__":
    app()
