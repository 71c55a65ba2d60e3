"""Run the runner manager service."""

import uvicorn

from runner_manager.config import config

if __name__ == "__main__":
    uvicorn.run(
        "runner_manager.main:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        reload=False,
    )
