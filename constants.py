import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

# "redis" or "memory"
STORE_BACKEND = os.getenv("STORE_BACKEND", "redis")

# Number of messages kept per room and replayed to a joining client
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", 50))

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

# WebSocket close code for a rejected handshake (policy violation)
WS_CLOSE_POLICY_VIOLATION = 1008

# Seconds a single broadcast write may take before the member is evicted
SEND_TIMEOUT = float(os.getenv("SEND_TIMEOUT", 5.0))
