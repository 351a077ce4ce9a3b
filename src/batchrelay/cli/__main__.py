"""CLI entry point for batchrelay.cli module.

Enables execution via: python -m batchrelay.cli
"""

from batchrelay.cli.serve import main

if __name__ == "__main__":
    main()
