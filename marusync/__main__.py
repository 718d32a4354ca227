"""
Package entry point for MaruSync.
"""

import asyncio


def run_main():
    """Run the application until it is stopped."""
    from .main import main

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run_main()
