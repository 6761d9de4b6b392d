"""Allow running as `python -m fileclaim`."""

from fileclaim.cli import main

if __name__ == "__main__":
    main()
