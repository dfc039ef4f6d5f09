#!/usr/bin/env python3
"""
main.py — Quick-start entry point.

    python main.py build photo.jpg 40 40 images/ -o mosaic.jpg

Or use the full CLI:

    python -m mosaicify.cli build --help
    python -m mosaicify.cli batch --input targets --images images
"""

from mosaicify.cli import app

if __name__ == "__main__":
    app()
