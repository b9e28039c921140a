"""
Entry point for running csfvendor as a module.

Usage:
    python -m csfvendor [command] [options]
"""

from csfvendor.cli import main

if __name__ == "__main__":
    main()
