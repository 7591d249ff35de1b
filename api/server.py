"""Server entry point for running the FastAPI application."""

import asyncio
import os
import signal

import uvicorn
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Open change streams never finish on their own
GRACEFUL_SHUTDOWN_SECONDS = int(os.getenv("GRACEFUL_SHUTDOWN_SECONDS", "5"))


class Server:
    """Custom server wrapper with proper signal handling."""

    def __init__(self, config: uvicorn.Config):
        self.server = uvicorn.Server(config)

    def handle_exit(self, _sig, _frame):
        """Handle exit signals."""
        print("\n[INFO] Received shutdown signal, stopping server...")
        self.server.should_exit = True

    async def serve(self):
        """Run the server with proper signal handling."""
        signal.signal(signal.SIGINT, self.handle_exit)
        signal.signal(signal.SIGTERM, self.handle_exit)

        await self.server.serve()


def run_server(host: str | None = None, port: int | None = None, reload: bool = False):
    """Run the FastAPI server."""
    host = host or os.getenv("HOST", "0.0.0.0")
    port = port or int(os.getenv("PORT", "8000"))

    if reload:
        # Ctrl-C handling may be degraded in reload mode due to the subprocess
        uvicorn.run(
            "api.app:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info",
            access_log=False,
            timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_SECONDS,
        )
    else:
        config = uvicorn.Config(
            "api.app:app",
            host=host,
            port=port,
            log_level="info",
            access_log=False,
            timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_SECONDS,
        )
        asyncio.run(Server(config).serve())


if __name__ == "__main__":
    run_server(reload=os.getenv("RELOAD", "false").lower() == "true")
