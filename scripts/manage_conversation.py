"""Archive, prune or delete a single conversation.

Usage:
    python -m scripts.manage_conversation archive <conversation_id>
    python -m scripts.manage_conversation prune <conversation_id> <user_id> --keep-last 20
    python -m scripts.manage_conversation delete <conversation_id> <user_id>
"""

import argparse
import asyncio

from novabot.core.config import settings
from novabot.core.database import build_engine, build_session_factory
from novabot.core.settings import DatabaseConfig, StoreConfig
from novabot.services.background import BackgroundDispatcher
from novabot.services.message_store import MessageRecordStore
from novabot.services.summary_store import ConversationSummaryStore


async def manage_conversation(
    action: str,
    conversation_id: str,
    user_id: str | None,
    database: DatabaseConfig,
    store: StoreConfig,
    keep_last: int = 50,
) -> int:
    """Run ``action`` and return how many documents it affected."""
    engine = build_engine(database)
    session_factory = build_session_factory(engine)
    summary_store = ConversationSummaryStore(session_factory, store)
    message_store = MessageRecordStore(
        session_factory, store, summary_store, BackgroundDispatcher()
    )
    try:
        match action:
            case "archive":
                affected = int(await summary_store.archive(conversation_id))
            case "prune":
                affected = await message_store.prune(
                    conversation_id, _require(user_id), keep_last
                )
            case "delete":
                affected = await summary_store.delete_conversation(
                    conversation_id, _require(user_id)
                )
            case _:
                raise ValueError(f"Unknown action: {action}")
    finally:
        await engine.dispose()
    print(f"{action}: {affected} document(s) affected in {conversation_id}")
    return affected


def _require(user_id: str | None) -> str:
    if not user_id:
        raise ValueError("user_id is required for this action")
    return user_id


def main() -> None:
    parser = argparse.ArgumentParser(description="Maintain one stored conversation")
    parser.add_argument("action", choices=["archive", "prune", "delete"])
    parser.add_argument("conversation_id")
    parser.add_argument("user_id", nargs="?")
    parser.add_argument(
        "--keep-last", type=int, default=50, help="Messages kept by prune"
    )
    args = parser.parse_args()

    if args.action != "archive" and not args.user_id:
        parser.error(f"{args.action} needs a user_id")
    asyncio.run(
        manage_conversation(
            args.action,
            args.conversation_id,
            args.user_id,
            settings.database,
            settings.store,
            keep_last=args.keep_last,
        )
    )


if __name__ == "__main__":
    main()
