#!/usr/bin/env python3

from cert_split.cli import app

if __name__ == "__main__":
    app()
