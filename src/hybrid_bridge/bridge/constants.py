"""Shared constants for the bridge module."""

# Socket buffer size for reading data (bytes)
SOCKET_READ_BUFFER_SIZE = 8192

# Timeout for closing a pool socket during disconnect (seconds)
POOL_DISCONNECT_TIMEOUT = 5.0

# Default eth_getWork poll interval when no config provided (seconds)
DEFAULT_POLL_INTERVAL = 2.0

# Default timeout for draining a write when no config provided (seconds)
DEFAULT_SEND_TIMEOUT = 10.0

# Identity token size stamped on submissions as "miner" (bytes)
IDENTITY_TOKEN_BYTES = 32

# JSON-RPC id used for submissions
SUBMISSION_ID = 1

# Maximum length for background task exception messages
MAX_BACKGROUND_ERROR_LENGTH = 500
