"""Create the conversation store tables.

Usage:
    python -m scripts.init_store
    python -m scripts.init_store --database-url sqlite+aiosqlite:///./novabot.db
"""

import argparse
import asyncio

from pydantic import SecretStr

from novabot.core.config import settings
from novabot.core.database import build_engine, create_tables
from novabot.core.settings import DatabaseConfig


async def init_store(config: DatabaseConfig) -> None:
    """Create every table the store needs if it does not exist yet."""
    engine = build_engine(config)
    try:
        await create_tables(engine)
    finally:
        await engine.dispose()
    print(f"Conversation store ready ({engine.dialect.name})")


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the conversation store tables")
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    args = parser.parse_args()

    config = settings.database
    if args.database_url:
        config = DatabaseConfig(url=SecretStr(args.database_url))
    asyncio.run(init_store(config))


if __name__ == "__main__":
    main()
