"""COD Order Confirmation - Main Entry Point."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env before the logger reads LOG_LEVEL / LOG_DIR
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(env_path)

from cod_confirm.config.settings import settings  # noqa: E402
from cod_confirm.server.app import create_app  # noqa: E402

# Create FastAPI application
app = create_app()

if __name__ == "__main__":
    import uvicorn

    reload = os.getenv("RELOAD", "false").lower() == "true"

    # timeout_graceful_shutdown bounds the wait for pending reply tasks
    uvicorn.run(
        "cod_confirm.main:app",
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
        timeout_graceful_shutdown=180,
        timeout_keep_alive=5,
        access_log=False,  # Disable uvicorn access log (we use structured logging)
    )
