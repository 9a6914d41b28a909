"""Call Pulse command line.

    python main.py serve [--host 0.0.0.0] [--port 8000]
    python main.py init-db
    python main.py save-transcript <conversation_id> [--retry]
    python main.py analyze <conversation_id> [--audio-file call.mp3]
    python main.py trigger-improvement
    python main.py create-playbook <playbook.json>
"""
import argparse
import asyncio
import base64
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from config import log_level

logger = logging.getLogger(__name__)


async def _init_db() -> None:
    from db.connection import create_all, dispose_engine, get_db
    from db.repositories import playbooks as playbooks_repo

    await create_all()
    async with get_db() as session:
        seeded = await playbooks_repo.seed_baseline(session)
    if seeded is None:
        logger.info("Tables ready; playbooks already present")
    await dispose_engine()


async def _save_transcript(conversation_id: str, retry: bool) -> dict:
    from db.connection import dispose_engine, get_db
    from pipeline import ingest

    if retry:
        saved = await ingest.finalize_call(conversation_id)
        result = {"ok": saved}
    else:
        async with get_db() as session:
            result = await ingest.save_transcript(session, conversation_id)
    await dispose_engine()
    return result


async def _analyze(conversation_id: str, audio_file: Optional[str] = None) -> dict:
    from db.connection import dispose_engine, get_db
    from pipeline import ingest

    payload = {"conversation_id": conversation_id}
    if audio_file:
        payload["audio_base64"] = base64.b64encode(Path(audio_file).read_bytes()).decode()
    async with get_db() as session:
        result = await ingest.handle_audio_event(session, payload)
    await dispose_engine()
    return result


async def _trigger() -> dict:
    from db.connection import dispose_engine, get_db
    from pipeline.improvement import maybe_trigger

    async with get_db() as session:
        result = await maybe_trigger(session)
    await dispose_engine()
    return result.model_dump()


async def _create_playbook(path: str) -> dict:
    from db.connection import dispose_engine
    from pipeline.improvement import publish_playbook
    from schemas.playbook import PlaybookCreate

    data = PlaybookCreate.model_validate_json(Path(path).read_text())
    playbook = await publish_playbook(data.model_dump())
    await dispose_engine()
    return {"id": str(playbook.id), "version": playbook.version}


def _print(result) -> None:
    print(json.dumps(result, indent=2, default=str))


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Call Pulse: call ingestion and playbook improvement")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP server")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)

    sub.add_parser("init-db", help="Create tables and seed the baseline playbook")

    save = sub.add_parser("save-transcript", help="Fetch and store a conversation transcript")
    save.add_argument("conversation_id")
    save.add_argument("--retry", action="store_true", help="Poll until the transcript is final")

    analyze = sub.add_parser("analyze", help="Run emotion analysis on a call's audio")
    analyze.add_argument("conversation_id")
    analyze.add_argument("--audio-file", help="Local audio instead of the provider recording")

    sub.add_parser("trigger-improvement", help="Check the threshold and fire a rewrite cycle")

    create = sub.add_parser("create-playbook", help="Publish the next playbook version from JSON")
    create.add_argument("path")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "serve":
        import uvicorn

        uvicorn.run("server:app", host=args.host, port=args.port, log_level=log_level().lower())
        return 0
    if args.command == "init-db":
        asyncio.run(_init_db())
        return 0
    if args.command == "save-transcript":
        _print(asyncio.run(_save_transcript(args.conversation_id, args.retry)))
    elif args.command == "analyze":
        _print(asyncio.run(_analyze(args.conversation_id, args.audio_file)))
    elif args.command == "trigger-improvement":
        _print(asyncio.run(_trigger()))
    elif args.command == "create-playbook":
        _print(asyncio.run(_create_playbook(args.path)))
    return 0


if __name__ == "__main__":
    sys.exit(main())
