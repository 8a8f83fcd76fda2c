"""
Runtime configuration, read from environment variables.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    port: int = 8080
    environment: str = "dev"
    log_level: str = "INFO"
    db_path: str = ""  # empty = in-memory store
    invoice_due_days: int = 30
    cors_origins: str = "*"

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            port=int(env.get("PORT", 8080)),
            environment=env.get("ENVIRONMENT", "dev"),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
            db_path=env.get("BILLING_DB_PATH", ""),
            invoice_due_days=int(env.get("INVOICE_DUE_DAYS", 30)),
            cors_origins=env.get("CORS_ORIGINS", "*"),
        )
