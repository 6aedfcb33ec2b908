"""Root conftest — shared test configuration."""

import os

# Ensure tests don't accidentally reach a real RPC provider
os.environ["RPC_API_KEY"] = ""
os.environ.pop("RPC_URLS", None)
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///test.db",
)
