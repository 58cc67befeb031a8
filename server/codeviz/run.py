import argparse
import logging
import os
import threading
import time
import webbrowser
from pathlib import Path

import uvicorn

from codeviz import dependencies
from codeviz.services.git_scan import find_repo_root


def _open_browser_later(url: str, delay: float = 1.0) -> None:
    """
    Open the default web browser after a short delay.

    This lets the server start first so the page is reachable.
    """

    def _worker() -> None:
        time.sleep(delay)
        try:
            webbrowser.open(url)
        except Exception:
            # Don't crash the CLI if opening the browser fails (e.g. headless env)
            pass

    thread = threading.Thread(target=_worker, daemon=True)
    thread.start()


def main(argv: list[str] | None = None) -> None:
    """
    Entry point for the CLI.

    - Uses the enclosing git repository of the given path (default: cwd).
    - Starts the FastAPI server.
    - Opens the default browser to the app URL unless told not to.
    """
    parser = argparse.ArgumentParser(
        prog="codeviz",
        description=(
            "Interactive git-aware treemap of a codebase. "
            "By default, visualizes the repository containing the current directory."
        ),
    )
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path inside the repository to visualize (default: current directory).",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host interface to bind the server to (default: 127.0.0.1).",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port to run the server on (default: 3000).",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Do not open a browser window.",
    )

    args = parser.parse_args(argv)

    target_path = os.path.abspath(args.path)
    if not os.path.exists(target_path):
        raise SystemExit(f"Path does not exist: {target_path}")

    repo_root = find_repo_root(Path(target_path))
    dependencies.ROOT_PATH = repo_root
    os.chdir(repo_root)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print(f"📂 Watching: {repo_root}")

    url = f"http://{args.host}:{args.port}"
    print(f"🚀 Visualize your codebase at: {url}")
    print("   Press Ctrl+C to stop.")

    if not args.no_browser:
        _open_browser_later(url)

    uvicorn.run(
        "codeviz.main:app",
        host=args.host,
        port=args.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
