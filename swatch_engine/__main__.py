"""Entry point for running swatch_engine as a module.

Usage:
    python -m swatch_engine <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
