"""Delete conversation documents past their retention period.

Meant to run on a schedule outside the bot process.

Usage:
    python -m scripts.purge_expired
    python -m scripts.purge_expired --stats
"""

import argparse
import asyncio
import sys

from novabot.core.config import settings
from novabot.core.database import build_engine, build_session_factory
from novabot.core.settings import DatabaseConfig, StoreConfig
from novabot.schemas.conversation_schema import StoreUnavailable
from novabot.services.background import BackgroundDispatcher
from novabot.services.message_store import MessageRecordStore
from novabot.services.summary_store import ConversationSummaryStore


async def purge_expired(
    database: DatabaseConfig, store_config: StoreConfig, show_stats: bool = False
) -> bool:
    """Purge expired messages and optionally print store counts.

    Returns False when the store could not be reached.
    """
    engine = build_engine(database)
    session_factory = build_session_factory(engine)
    summary_store = ConversationSummaryStore(session_factory, store_config)
    store = MessageRecordStore(
        session_factory, store_config, summary_store, BackgroundDispatcher()
    )
    try:
        removed = await store.purge_expired()
        if isinstance(removed, StoreUnavailable):
            print(f"Purge failed: {removed.reason}")
            return False
        print(f"Removed {removed} expired documents")
        if show_stats:
            stats = await store.stats()
            if stats:
                print(stats.model_dump_json(indent=2))
            else:
                print(f"Stats unavailable: {stats.reason}")
    finally:
        await engine.dispose()
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description="Purge expired conversation documents")
    parser.add_argument("--stats", action="store_true", help="Print counts afterwards")
    args = parser.parse_args()

    if not asyncio.run(purge_expired(settings.database, settings.store, args.stats)):
        sys.exit(1)


if __name__ == "__main__":
    main()
