"""SolanaStories: dev launcher. Starts the backend in watch mode."""

import argparse
import logging
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def check_knowledge(knowledge_dir: Path) -> int:
    """Load the knowledge assets once and report; non-zero exit on failure."""
    from solana_stories.errors import InitializationError
    from solana_stories.knowledge import KnowledgeBase

    kb = KnowledgeBase(knowledge_dir)
    try:
        kb.initialize()
    except InitializationError as e:
        print(f"Knowledge base is broken: {e}")
        return 1
    print(f"Knowledge base OK: context is {len(kb.get_knowledge_context())} characters")
    return 0


def main():
    parser = argparse.ArgumentParser(description="SolanaStories dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Conversation storage directory (default: ./data)")
    parser.add_argument("--knowledge-dir", type=Path, default=None,
                        help="Knowledge asset directory (default: ./presets/knowledge)")
    parser.add_argument("--check", action="store_true",
                        help="Validate the knowledge assets and exit")
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.check:
        from solana_stories.config import DEFAULT_KNOWLEDGE_DIR
        sys.exit(check_knowledge(args.knowledge_dir or DEFAULT_KNOWLEDGE_DIR))

    # Build env for the subprocess so the backend picks up the same dirs
    env = os.environ.copy()
    if args.data_dir:
        env["DATA_DIR"] = str(args.data_dir.resolve())
    if args.knowledge_dir:
        env["KNOWLEDGE_DIR"] = str(args.knowledge_dir.resolve())

    print(f"Starting backend on http://localhost:{BACKEND_PORT} ...")
    proc = subprocess.Popen(
        ["uv", "run", "uvicorn", "backend.app:app", "--reload", "--host", HOST, "--port", BACKEND_PORT],
        cwd=ROOT, env=env,
    )

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)

    proc.wait()


if __name__ == "__main__":
    main()
