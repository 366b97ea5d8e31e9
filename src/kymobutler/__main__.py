"""Entry point for ``python -m kymobutler``."""

from kymobutler.cli import main

if __name__ == "__main__":
    main()
