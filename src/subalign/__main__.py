"""Allow running as `python -m subalign`."""
from .cli import main


if __name__ == "__main__":
    main();
