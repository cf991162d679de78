"""Baker Street launcher. Serves the API, or replays a recorded narrator stream."""

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "13013"))


async def replay(path: Path, chunk: int) -> int:
    """Feed a recorded buffer through the engine and print the events."""
    from baker_street.models import Stage
    from baker_street.pipeline import CaseEngine
    from baker_street.stream import ScriptedStreamSource

    text = path.read_text(encoding="utf-8")
    source = ScriptedStreamSource({stage: [text] for stage in Stage}, chunk_size=chunk)
    engine = CaseEngine(source)
    await engine.start_stream(context={})
    session = await engine.wait()

    for event in session.events:
        print(json.dumps(event.model_dump(mode="json"), ensure_ascii=False))
    if session.malformed:
        print("stream was malformed and closed early", file=sys.stderr)
    if session.error:
        print(f"error: {session.error}", file=sys.stderr)
        return 1
    return 0


def main():
    parser = argparse.ArgumentParser(description="Baker Street launcher")
    parser.add_argument("--serve", action="store_true",
                        help="Run the API server with uvicorn")
    parser.add_argument("--replay", type=Path, default=None, metavar="FILE",
                        help="Replay a recorded stream buffer and print the events")
    parser.add_argument("--chunk", type=int, default=0,
                        help="Replay chunk size in characters (0 = one shot)")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.replay:
        sys.exit(asyncio.run(replay(args.replay, args.chunk)))

    if args.serve:
        import uvicorn
        uvicorn.run("baker_street.app:create_app", factory=True, host=HOST, port=PORT)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
