"""Allow ``python -m mapchain``."""

from .cli import app

if __name__ == "__main__":
    app()
