"""Entry point for python -m teamlock."""

from teamlock.cli import app

if __name__ == "__main__":
    app()
