from dotenv import load_dotenv
import os

load_dotenv()

MONGODB_URI = os.getenv("MONGODB_URI")
MONGODB_DATABASE_NAME = os.getenv("MONGODB_DATABASE_NAME", "runghost")

# Workspace path override (takes precedence over config.yaml)
RUNGHOST_WORKSPACE_PATH = os.getenv("RUNGHOST_WORKSPACE_PATH")
RUNGHOST_CONFIG_DIR = os.getenv("RUNGHOST_CONFIG_DIR")

NPM_REGISTRY_URL = os.getenv("NPM_REGISTRY_URL", "https://registry.npmjs.org")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
