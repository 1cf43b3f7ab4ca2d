"""Local dev entrypoint for the EntityForge API.

Run after ``pip install -e .`` from the repository root.
"""

import os

import uvicorn

if __name__ == "__main__":
    uvicorn.run(
        "entityforge.api.app:app",
        host="127.0.0.1",
        port=int(os.environ.get("ENTITYFORGE_PORT", "8000")),
        reload=True,
        log_level=os.environ.get("ENTITYFORGE_LOG_LEVEL", "info"),
    )
