"""
Entry point for running gbbackup as a module.

Usage:
    python -m gbbackup [command] [options]
"""

from gbbackup.cli import main

if __name__ == "__main__":
    main()
