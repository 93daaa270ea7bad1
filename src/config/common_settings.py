import os
from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file

# --------------------------------------------------
# Logging
# --------------------------------------------------
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# --------------------------------------------------
# Database Configuration
# --------------------------------------------------
# Validated lazily in src.config.database_config
DATABASE_URL = os.environ.get("DATABASE_URL")
DATABASE_HOST = os.environ.get("DATABASE_HOST")
DATABASE_PORT = os.environ.get("DATABASE_PORT", "5432")
DATABASE_NAME = os.environ.get("DATABASE_NAME")
DATABASE_USER = os.environ.get("DATABASE_USER")
DATABASE_PASSWORD = os.environ.get("DATABASE_PASSWORD")

DB_POOL_MIN = int(os.environ.get("DB_POOL_MIN", "1"))
DB_POOL_MAX = int(os.environ.get("DB_POOL_MAX", "5"))
# Seconds a caller waits for a free pooled connection
DB_POOL_TIMEOUT = float(os.environ.get("DB_POOL_TIMEOUT", "30"))

# --------------------------------------------------
# Governance indexer (external proposal / member source)
# --------------------------------------------------
GOVERNANCE_API_URL = os.environ.get("GOVERNANCE_API_URL", "http://localhost:4000")
GOVERNANCE_API_TIMEOUT = float(os.environ.get("GOVERNANCE_API_TIMEOUT", "30"))

# --------------------------------------------------
# Feed Configuration
# --------------------------------------------------
# Page size used when a request carries only a cursor
FEED_PAGE_SIZE = int(os.environ.get("FEED_PAGE_SIZE", "25"))

# Hours of item age per unit of vote relevance weight
RELEVANCE_WEIGHT_HOURS = int(os.environ.get("RELEVANCE_WEIGHT_HOURS", "4"))

# Environments every feed operation rejects outright
RESTRICTED_ENVIRONMENTS = frozenset(
    env.strip().lower()
    for env in os.environ.get("RESTRICTED_ENVIRONMENTS", "devnet").split(",")
    if env.strip()
)

# --------------------------------------------------
# API Configuration
# --------------------------------------------------
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# Optional "module:Class" of a middleware that sets request.state.user
AUTH_MIDDLEWARE = os.environ.get("AUTH_MIDDLEWARE")
