"""
Environment-driven configuration for the board server, CLI, and client.
"""

import os
from dataclasses import dataclass, field, replace
from typing import Optional


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("true", "1", "yes", "on")


@dataclass(frozen=True)
class BoardSettings:
    """
    Runtime settings resolved from environment variables.

    CLI options override these via ``with_overrides``.
    """

    database_path: str = "kanban_board.db"
    host: str = "0.0.0.0"
    port: int = 2022
    log_level: str = "INFO"
    # Route status/position changes in update() through the reindexer
    reindex_on_update: bool = False
    client_timeout: float = 10.0
    api_url: str = field(default="http://localhost:2022")

    @classmethod
    def from_env(cls) -> "BoardSettings":
        return cls(
            database_path=os.getenv("DATABASE_PATH", "kanban_board.db"),
            host=os.getenv("SERVER_HOST", "0.0.0.0"),
            port=int(os.getenv("SERVER_PORT", "2022")),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            reindex_on_update=_env_bool("KANBAN_REINDEX_ON_UPDATE"),
            client_timeout=float(os.getenv("KANBAN_CLIENT_TIMEOUT", "10")),
            api_url=os.getenv("KANBAN_API_URL", "http://localhost:2022"),
        )

    def with_overrides(self, **overrides: Optional[object]) -> "BoardSettings":
        """Return a copy with every non-None override applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})
