"""
Constants shared across the chat client.
"""

# Environment variables checked for the API key, in order
API_KEY_ENV_VARS = ("API_KEY", "GEMINI_API_KEY")

# Path of the JSON file the CLI uses to persist error history
ERROR_STORE_ENV_VAR = "AURA_ERROR_STORE"
DEFAULT_ERROR_STORE_PATH = "~/.aura_chat/errors.json"

# Persisted error history
ERROR_STORAGE_KEY = "app_errors"
MAX_STORED_ERRORS = 50

# Number of stored errors reported by the service health check
HEALTH_ERROR_TAIL = 5

DEFAULT_MODEL = "gemini-2.5-flash"
GEMINI_API_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

DEFAULT_SYSTEM_INSTRUCTION = (
    "You are Aura, a compassionate and patient guide. Validate the user's "
    "feelings first, keep responses concise, and ask gentle questions "
    "rather than giving direct advice."
)

PROBE_SYSTEM_INSTRUCTION = 'You are a test assistant. Respond with "OK" only.'
