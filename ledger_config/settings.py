"""
Process settings and bootstrap.

Settings come from the environment:

    LEDGER_DATABASE_URL      SQLAlchemy URL (default: sqlite:///ledger.db)
    LEDGER_LOG_LEVEL         logging level name (default: INFO)
    LEDGER_SQL_ECHO          "1"/"true" echoes SQL
    LEDGER_SUSPENSE_ACCOUNT  code for SuspenseBalancingPolicy; unset means
                             unbalanced templates are always rejected
"""

import os
from dataclasses import dataclass
from typing import Mapping

from sqlalchemy.engine import Engine

from ledger_kernel.db.engine import create_tables, init_engine_from_url
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.logging_config import configure_logging, get_logger
from ledger_kernel.posting_rules.suspense import SuspenseBalancingPolicy

logger = get_logger("config.settings")

DEFAULT_DATABASE_URL = "sqlite:///ledger.db"

_TRUE = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class LedgerSettings:
    database_url: str = DEFAULT_DATABASE_URL
    log_level: str = "INFO"
    sql_echo: bool = False
    suspense_account_code: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "LedgerSettings":
        env = os.environ if environ is None else environ
        return cls(
            database_url=env.get("LEDGER_DATABASE_URL", DEFAULT_DATABASE_URL),
            log_level=env.get("LEDGER_LOG_LEVEL", "INFO").upper(),
            sql_echo=env.get("LEDGER_SQL_ECHO", "").strip().lower() in _TRUE,
            suspense_account_code=env.get("LEDGER_SUSPENSE_ACCOUNT") or None,
        )

    def balancing_policy(self) -> SuspenseBalancingPolicy | None:
        """The opt-in suspense policy, or None when no account is configured."""
        if not self.suspense_account_code:
            return None
        return SuspenseBalancingPolicy(self.suspense_account_code)


def bootstrap(settings: LedgerSettings | None = None) -> Engine:
    """
    Wire a process: logging, engine, tables, immutability listeners.

    Returns the initialized engine; sessions come from
    ``ledger_kernel.db.engine.get_session_factory()``.
    """
    settings = settings or LedgerSettings.from_env()
    configure_logging(level=settings.log_level)
    engine = init_engine_from_url(settings.database_url, echo=settings.sql_echo)
    create_tables(engine)
    register_immutability_listeners()
    logger.info(
        "ledger_bootstrapped",
        extra={
            "dialect": engine.dialect.name,
            "suspense_account": settings.suspense_account_code,
        },
    )
    return engine
