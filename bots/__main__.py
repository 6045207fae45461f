"""Entry point for running the community bot as a module via python -m bots"""

import asyncio

from bots.community import main


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
