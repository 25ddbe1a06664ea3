"""Route prefixes shared by the FastAPI app and the test-suite."""

# Base API prefix (all HTTP routes are served under /api/*)
API_PREFIX = "/api"

# Router prefixes (relative to API_PREFIX)
CONVERSATIONS_PREFIX = "/conversations"
