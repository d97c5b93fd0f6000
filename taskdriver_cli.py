#!/usr/bin/env python3
"""
taskdriver CLI

Runs and stops single tasks as Docker containers.
"""

from taskdriver.cli.commands import app


if __name__ == '__main__':
    app()
