"""Allow ``python -m switchyard``."""

from switchyard.cli.cli import main

if __name__ == "__main__":
    main()
