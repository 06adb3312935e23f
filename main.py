"""DRIFTER — dev launcher. Starts the API server under uvicorn."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="DRIFTER dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Save/config directory (default: ./data)")
    parser.add_argument("--host", default=HOST)
    parser.add_argument("--port", type=int, default=int(BACKEND_PORT))
    parser.add_argument("--reload", action="store_true",
                        help="Restart on code changes")
    parser.add_argument("--log-level", default="info",
                        choices=["debug", "info", "warning", "error"])
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # The app factory reads DATA_DIR, so the reloader's child process sees it too
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    print(f"Starting DRIFTER on http://localhost:{args.port} ...")
    uvicorn.run(
        "drifter.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
