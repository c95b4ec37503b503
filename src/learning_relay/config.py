"""Learning Relay configuration, read from the environment."""

import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Catalog source
CATALOG_AUTH_URL = os.getenv(
    "CATALOG_AUTH_URL", "https://www.cloudskillsboost.google/api/v2/authenticate"
)
CATALOG_URL = os.getenv(
    "CATALOG_URL",
    "https://www.cloudskillsboost.google/api/v2/catalogs/"
    "gcp-self-paced-labs-all-public/items",
)
CATALOG_PAGE_SIZE = int(os.getenv("CATALOG_PAGE_SIZE", "900"))
CATALOG_ACCESS_KEY = os.getenv("CATALOG_ACCESS_KEY", "")
CATALOG_SECRET_KEY = os.getenv("CATALOG_SECRET_KEY", "")

# Learning-path generator
LEARNING_PATH_URL = os.getenv(
    "LEARNING_PATH_URL",
    "https://us-central1-learnahoy.cloudfunctions.net/generateLearningPath",
)
LEARNING_PATH_TOPIC = os.getenv("LEARNING_PATH_TOPIC", "learning cloud technology")
LEARNING_PATH_LEVEL = os.getenv("LEARNING_PATH_LEVEL", "beginner")

SKILLS = [
    s.strip()
    for s in os.getenv("SKILLS", "Bigquery,Logging,Cloud Run").split(",")
    if s.strip()
]

# Timeouts (seconds)
TOOL_TIMEOUT = float(os.getenv("TOOL_TIMEOUT", "30"))
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "30"))

# Matching
LAUNCH_THRESHOLD = float(os.getenv("LAUNCH_THRESHOLD", "0.75"))
SEARCH_MAX_RESULTS = int(os.getenv("SEARCH_MAX_RESULTS", "10"))
SEARCH_MAX_LABS = int(os.getenv("SEARCH_MAX_LABS", "2"))

# Sessions without a stream are closed after this long unused; 0 disables
SESSION_IDLE_TIMEOUT = float(os.getenv("SESSION_IDLE_TIMEOUT", "3600"))
SESSION_REAP_INTERVAL = float(os.getenv("SESSION_REAP_INTERVAL", "60"))
