"""
Entry point for running the manager via `python -m runner_manager`.

Starts the FastAPI server with uvicorn.
"""

import uvicorn

from .config import config


def main():
    """Run the runner manager server."""
    uvicorn.run(
        "runner_manager.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
