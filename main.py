# Copyright (c) 2025 Trae AI. All rights reserved.

from shelfkeeper.cli.main import app

if __name__ == "__main__":
    app()
