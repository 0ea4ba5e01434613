"""Entry point for running newsletter_engine as a module.

Usage:
    python -m newsletter_engine <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
