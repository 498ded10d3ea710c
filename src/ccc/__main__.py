"""Module entry point for ``python -m ccc``."""

from ccc.cli import main

if __name__ == "__main__":
    main()
