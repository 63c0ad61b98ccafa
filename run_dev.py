import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Configured before the app is imported so settings logging is visible
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s RUN_DEV - [%(levelname)s] - %(message)s'
)
logger = logging.getLogger("noke_run_dev")

TRUTHY = {"true", "1", "yes", "on", "t"}


def env_flag(name: str, default: bool) -> bool:
    return os.getenv(name, str(default)).lower() in TRUTHY


if __name__ == "__main__":
    dotenv_path = Path(__file__).parent.resolve() / ".env"
    if dotenv_path.exists():
        load_dotenv(dotenv_path=dotenv_path, override=True)
        logger.info(f"Loaded environment from {dotenv_path}")
    else:
        logger.warning(f"No .env at {dotenv_path}; using OS environment and settings defaults.")

    logger.info(f"NOKE_ENCRYPTION_KEY: {'********' if os.getenv('NOKE_ENCRYPTION_KEY') else 'None (encryption disabled)'}")
    logger.info(f"SQLITE_DB_PATH: {os.getenv('SQLITE_DB_PATH', './noke_data.sqlite3')}")
    logger.info(f"WEB_APP_BASE_URL: {os.getenv('WEB_APP_BASE_URL', 'http://localhost:5173')}")

    debug_mode = env_flag("DEBUG_MODE", False)
    host = os.getenv("DEV_SERVER_HOST", "127.0.0.1")
    port = int(os.getenv("DEV_SERVER_PORT", "8000"))
    reload = env_flag("DEV_SERVER_RELOAD", debug_mode)

    logger.info(f"Serving noke.main:app on http://{host}:{port} (reload={reload})")
    uvicorn.run(
        "noke.main:app",
        host=host,
        port=port,
        log_level=os.getenv("DEV_SERVER_LOG_LEVEL", "debug" if debug_mode else "info").lower(),
        reload=reload
    )
