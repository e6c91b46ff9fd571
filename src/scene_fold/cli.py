"""Command-line interface for scene folding over stored chats."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .chat.identity import ensure_id
from .chat.models import ChatMessage
from .config import SceneFoldConfig
from .exporters import EXPORTERS
from .render import render
from .scenes.exceptions import SceneError, SceneNotFoundError
from .scenes.reconcile import check_consistency
from .scenes.store import SceneStore
from .session import SceneFoldSession
from .storage import ChatNotFoundError, ChatStore, StorageError

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Fold chat scenes into summaries")
    parser.add_argument("--db", default="data/scene_fold.db", help="Path to scene_fold SQLite DB")
    parser.add_argument("--chat", default="default", help="Chat id inside the database")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    import_parser = subparsers.add_parser("import", help="Load a chat from a JSONL file")
    import_parser.add_argument("path", help="JSONL file, one message object per line")
    import_parser.add_argument("--replace", action="store_true", help="Overwrite an existing chat")

    subparsers.add_parser("list", help="Show scenes in chat order")

    create_parser = subparsers.add_parser("create", help="Declare a scene over a message range")
    create_parser.add_argument("start", type=int, help="First message position")
    create_parser.add_argument("end", type=int, help="Last message position (inclusive)")
    create_parser.add_argument("--guidance", default=None, help="Extra summarization guidance")

    delete_parser = subparsers.add_parser("delete", help="Delete a scene and its summary")
    delete_parser.add_argument("scene_id")

    undo_parser = subparsers.add_parser("undo", help="Remove a scene's summary and unhide sources")
    undo_parser.add_argument("scene_id")

    summarize_parser = subparsers.add_parser("summarize", help="Summarize scenes via the agent")
    summarize_parser.add_argument("scene_ids", nargs="*", help="Scenes to summarize")
    summarize_parser.add_argument("--all", action="store_true", help="Summarize every defined scene")
    summarize_parser.add_argument("--agent-url", default="http://localhost:8080", help="Agent base URL")
    summarize_parser.add_argument("--model", default=None, help="Model name sent to the agent")
    summarize_parser.add_argument("--temperature", type=float, default=0.3, help="Sampling temperature")
    summarize_parser.add_argument("--max-tokens", type=int, default=512, help="Generation budget")
    summarize_parser.add_argument("--max-retries", type=int, default=2, help="Retries after a transient failure")

    subparsers.add_parser("check", help="Report scene/chat inconsistencies")

    export_parser = subparsers.add_parser("export", help="Export scenes to a file")
    export_parser.add_argument("output", help="Output path")
    export_parser.add_argument("--format", choices=sorted(EXPORTERS), default="json")

    return parser


def read_jsonl(path: Path) -> list[ChatMessage]:
    """Read host messages, skipping header lines without text."""
    messages = []
    with open(path, encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}:{line_no}: invalid JSON: {e}") from e
            if not isinstance(data, dict):
                continue
            text = data.get("text", data.get("mes"))
            if text is None:
                continue
            message = ChatMessage.from_dict({**data, "text": text})
            message.hidden = bool(data.get("hidden", data.get("is_system", False)))
            ensure_id(message)
            messages.append(message)
    return messages


def open_session(chat_store: ChatStore, chat_id: str, config: SceneFoldConfig) -> SceneFoldSession:
    """Load a stored chat, heal interrupted state and bind persistence."""
    sequence = chat_store.load_sequence(chat_id)
    store = chat_store.load_store(chat_id)
    session = SceneFoldSession(
        sequence,
        store=store,
        config=config,
        persistence=chat_store.bind(chat_id, sequence, store),
    )
    reset = session.on_chat_loaded()
    if reset:
        LOGGER.info("Reset %d interrupted scene(s)", reset)
    return session


def import_chat(chat_store: ChatStore, args: argparse.Namespace) -> int:
    if chat_store.chat_exists(args.chat) and not args.replace:
        LOGGER.error("Chat %s already exists; pass --replace to overwrite", args.chat)
        return 1
    messages = read_jsonl(Path(args.path))
    chat_store.save_sequence(args.chat, messages)
    chat_store.save_scenes(args.chat, SceneStore())
    print(f"Imported {len(messages)} messages into chat {args.chat}")
    return 0


def require_scene(session: SceneFoldSession, scene_id: str) -> None:
    if scene_id not in session.store:
        raise SceneNotFoundError(scene_id)


def list_scenes(session: SceneFoldSession) -> int:
    view = render(session.store, session.sequence)
    if not view.scenes:
        print("No scenes")
        return 0
    for scene in view.scenes:
        print(f"{scene.scene_id}  {scene.status:<11}  {scene.range_text}  {scene.status_text}")
    if view.toolbar is not None:
        print(view.toolbar.info_text)
    return 0


async def summarize_scenes(session: SceneFoldSession, args: argparse.Namespace) -> int:
    if args.all:
        targets = [s.id for s in session.store.list_ordered(session.sequence) if s.status == "defined"]
        queued = session.summarize_all()
    else:
        targets = list(args.scene_ids)
        for scene_id in targets:
            require_scene(session, scene_id)
        queued = session.queue.enqueue_many(targets)
    if not queued:
        print("Nothing to summarize")
        return 0
    await session.queue.join()

    failed = 0
    for scene_id in targets:
        scene = session.store.get(scene_id)
        if scene is not None and scene.status == "error":
            print(f"{scene_id}: {scene.last_error}")
            failed += 1
    print(f"Summarized {queued - failed} of {queued} scene(s)")
    return 1 if failed else 0


def check(session: SceneFoldSession) -> int:
    problems = check_consistency(session.store, session.sequence)
    for problem in problems:
        print(problem)
    if not problems:
        print("OK")
    return 1 if problems else 0


def export(session: SceneFoldSession, args: argparse.Namespace) -> int:
    exporter = EXPORTERS[args.format]()
    scenes = session.store.list_ordered(session.sequence)
    count = exporter.export(scenes, session.sequence, Path(args.output))
    print(f"Exported {count} scenes to {args.output}")
    return 0


def run(args: argparse.Namespace) -> int:
    config = SceneFoldConfig(db_path=Path(args.db))
    if args.command == "summarize":
        config.agent_url = args.agent_url
        config.model = args.model
        config.temperature = args.temperature
        config.max_tokens = args.max_tokens
        config.max_retries = args.max_retries

    chat_store = ChatStore(config.db_path)
    try:
        if args.command == "import":
            return import_chat(chat_store, args)

        session = open_session(chat_store, args.chat, config)
        if args.command == "list":
            return list_scenes(session)
        if args.command == "create":
            scene = session.create_scene(args.start, args.end, args.guidance)
            if scene is not None:
                print(scene.id)
            return 0
        if args.command == "delete":
            require_scene(session, args.scene_id)
            return 0 if session.delete_scene(args.scene_id) else 1
        if args.command == "undo":
            require_scene(session, args.scene_id)
            return 0 if session.undo(args.scene_id) else 1
        if args.command == "summarize":
            return asyncio.run(summarize_scenes(session, args))
        if args.command == "check":
            return check(session)
        if args.command == "export":
            return export(session, args)
        raise ValueError(f"Unknown command {args.command}")
    finally:
        chat_store.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    try:
        return run(args)
    except ChatNotFoundError as e:
        LOGGER.error("%s; import it first", e)
    except (SceneError, StorageError, ValueError, OSError) as e:
        LOGGER.error("%s", e)
    return 1


if __name__ == "__main__":
    sys.exit(main())
