"""Main application entry point.

Runs FastAPI with NiceGUI mounted for the chat interface.
Environment variables are loaded from .env file.
"""

import logging
import os
import socket
import sys

from dotenv import load_dotenv

# Load environment variables before any other imports that might need them
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)

PORT_ATTEMPTS = 5


def find_port(host: str, port: int, attempts: int = PORT_ATTEMPTS) -> int:
    """Return ``port`` or the next free one within ``attempts`` tries."""
    for candidate in range(port, port + attempts + 1):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            try:
                sock.bind((host, candidate))
            except OSError:
                logger.warning(f"Port {candidate} in use, trying {candidate + 1}...")
                continue
        return candidate
    raise RuntimeError(f"No free port in {port}-{port + attempts}")


def run_integrated() -> None:
    """Run FastAPI with NiceGUI mounted on the same server.

    FastAPI handles API routes, NiceGUI handles the UI.
    """
    import uvicorn
    from nicegui import ui

    from askuni.api.app import create_app
    from askuni.ui.chat_page import chat_page  # noqa: F401 - Registers the page

    app = create_app()

    ui.run_with(
        app,
        title="AskUni",
        favicon="🎓",
        storage_secret=os.getenv("NICEGUI_STORAGE_SECRET", "askuni-secret"),
    )

    host = os.getenv("HOST", "0.0.0.0")
    port = find_port(host, int(os.getenv("PORT", "8000")))
    if port != int(os.getenv("PORT", "8000")):
        # The UI's API client must follow the server to its actual port
        os.environ["API_BASE_URL"] = f"http://localhost:{port}"

    logger.info(f"AskUni listening on http://localhost:{port}")
    logger.info(f"API docs available at http://localhost:{port}/docs")

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


def run_separate() -> None:
    """Run FastAPI and NiceGUI as separate servers.

    FastAPI on port 8000, NiceGUI on port 8080.
    """
    import asyncio
    import subprocess

    async def run_servers() -> None:
        logger.info("Starting FastAPI on http://localhost:8000")
        logger.info("Starting NiceGUI on http://localhost:8080")

        fastapi_proc = subprocess.Popen(
            [
                sys.executable,
                "-m",
                "uvicorn",
                "askuni.api.app:app",
                "--host",
                os.getenv("HOST", "0.0.0.0"),
                "--port",
                "8000",
            ]
        )

        nicegui_proc = subprocess.Popen(
            [sys.executable, "-c", "from askuni.ui.chat_page import main; main()"]
        )

        try:
            while True:
                await asyncio.sleep(1)
                if fastapi_proc.poll() is not None or nicegui_proc.poll() is not None:
                    break
        except KeyboardInterrupt:
            logger.info("Shutting down servers...")
        finally:
            fastapi_proc.terminate()
            nicegui_proc.terminate()
            fastapi_proc.wait()
            nicegui_proc.wait()

    asyncio.run(run_servers())


def main() -> None:
    """Application entry point.

    Set RUN_MODE=separate to run FastAPI and NiceGUI on different ports.
    """
    mode = os.getenv("RUN_MODE", "integrated").lower()

    logger.info(f"Starting AskUni in {mode} mode")

    if mode == "separate":
        run_separate()
    else:
        run_integrated()


if __name__ == "__main__":
    main()
