# noke/cli/config.py
import os
from dotenv import load_dotenv
from pathlib import Path

# This cli/config.py file is at <project>/noke/cli/config.py
project_root = Path(__file__).parent.parent.parent.resolve()

load_dotenv(dotenv_path=project_root / '.env', override=True)

# Server the CLI talks to (root URL, without /api)
NOKE_CLI_API_BASE_URL = os.getenv("NOKE_CLI_API_BASE_URL", "http://127.0.0.1:8000")

# Where the CLI keeps its plugin id, secret and current rolling key
NOKE_CLI_CREDENTIALS_FILE = Path(
    os.getenv("NOKE_CLI_CREDENTIALS_FILE", str(Path.home() / ".noke" / "plugin.json"))
).expanduser()
