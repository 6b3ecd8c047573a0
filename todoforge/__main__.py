"""
Entry point for running todoforge as a module.

Usage:
    python -m todoforge run                 # Run an autonomous session
    python -m todoforge todos               # List TODOs and their verdicts
    python -m todoforge --help

This is equivalent to:
    python -m todoforge.cli.todoforge_cli [args]
"""

import sys


def main():
    """Main entry point."""
    from todoforge.cli.todoforge_cli import main as cli_main
    return cli_main()


if __name__ == "__main__":
    sys.exit(main())
