# ABOUTME: Entry point for launching the Keeper command-line interface.
# ABOUTME: Provides simple command to run: python -m keeper.interface

from keeper.interface.cli import main

if __name__ == "__main__":
    main()
