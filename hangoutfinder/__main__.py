"""
Entry point for ``python -m hangoutfinder``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
