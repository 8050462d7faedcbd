"""Application configuration driven by environment variables.

All settings have sensible defaults for local development against
``mock_server.py``.
"""

import os

# ---------------------------------------------------------------------------
# Python gRPC server (the presentation layer connects to us on this address)
# ---------------------------------------------------------------------------

GRPC_SERVER_HOST: str = os.getenv("GRPC_SERVER_HOST", "0.0.0.0")
GRPC_SERVER_PORT: int = int(os.getenv("GRPC_SERVER_PORT", "50051"))

# Thread pool size for the gRPC server.  Each concurrent RPC occupies one
# thread, so this caps concurrent request handling.
GRPC_MAX_WORKERS: int = int(os.getenv("GRPC_MAX_WORKERS", "10"))

# ---------------------------------------------------------------------------
# Document store (we connect to it as a gRPC client)
# ---------------------------------------------------------------------------

DOCSTORE_ADDRESS: str = os.getenv("DOCSTORE_ADDRESS", "localhost:50052")

# Deadline applied to every unary call to the document store.
RPC_TIMEOUT_SECONDS: float = float(os.getenv("RPC_TIMEOUT_SECONDS", "5"))

# Threads available for background reads (catalogue, preferences).
BACKEND_WORKERS: int = int(os.getenv("BACKEND_WORKERS", "4"))

# How long startup waits for the catalogue before serving anyway.
HYDRATION_TIMEOUT_SECONDS: float = float(os.getenv("HYDRATION_TIMEOUT_SECONDS", "10"))

# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------

# Signed in at startup when set; otherwise the client calls SignIn.
DEFAULT_USER_ID: str | None = os.getenv("DEFAULT_USER_ID") or None

# Seed for the pair selector.  Unset means nondeterministic.
RANDOM_SEED: int | None = (
    int(os.environ["RANDOM_SEED"]) if os.getenv("RANDOM_SEED") else None
)

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
