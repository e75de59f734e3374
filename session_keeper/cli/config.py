# session_keeper/cli/config.py
import os
from dotenv import load_dotenv
from pathlib import Path

# This cli/config.py file is at <project>/session_keeper/cli/config.py
project_root = Path(__file__).parent.parent.parent.resolve()

# Load environment variables from .env file, overriding system environment variables
load_dotenv(dotenv_path=project_root / '.env', override=True)

# Log level for CLI runs; library logging stays quiet unless asked for
KEEPER_CLI_LOG_LEVEL = os.getenv("KEEPER_CLI_LOG_LEVEL", "WARNING").upper()
