"""Allow ``python -m simrun_api``."""

from .cli import app

if __name__ == "__main__":
    app()
