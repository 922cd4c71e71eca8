"""
Clean main entry point for the search visibility orchestrator
"""
import asyncio

from app import main


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
