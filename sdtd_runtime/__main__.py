#!/usr/bin/env python3
"""
Main entry point when run as a module.

This allows the entrypoint to be executed with: python -m sdtd_runtime
"""

from .cli import main

if __name__ == '__main__':
    main()
