"""Entry point for ``python -m sqld``."""

from .server import main

if __name__ == "__main__":
    main()
