"""Lorekeeper dev launcher. Starts the API server in watch mode."""

import argparse
import os
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = os.getenv("PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Lorekeeper dev launcher")
    parser.add_argument("--port", default=PORT, help=f"API port (default: {PORT})")
    parser.add_argument("--max-tokens", type=int, default=None,
                        help="Override LOREKEEPER_MAX_TOKENS for this run")
    parser.add_argument("--no-reload", action="store_true",
                        help="Run without auto-reload")
    args = parser.parse_args()

    env = os.environ.copy()
    if args.max_tokens is not None:
        env["LOREKEEPER_MAX_TOKENS"] = str(args.max_tokens)

    cmd = ["uv", "run", "uvicorn", "lorekeeper.app:app", "--host", HOST, "--port", str(args.port)]
    if not args.no_reload:
        cmd.append("--reload")

    print(f"Starting API on http://localhost:{args.port} ...")
    proc = subprocess.Popen(cmd, cwd=ROOT, env=env)
    try:
        sys.exit(proc.wait())
    except KeyboardInterrupt:
        print("\nShutting down...")
        proc.terminate()
        proc.wait()


if __name__ == "__main__":
    main()
