"""
Entry point for running the relayer as a module.

Usage:
    python -m ibc_relayer
"""

from ibc_relayer.cli import main

if __name__ == "__main__":
    main()
