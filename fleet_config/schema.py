"""
Typed runtime configuration for the fleet ledger.

``LedgerConfig`` is a frozen dataclass validated on construction; every
consumer (CLI, seed script, tests) receives one and passes the individual
values into the kernel.  The kernel itself never reads configuration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields


@dataclass(frozen=True)
class LedgerConfig:
    """
    Runtime settings.

    Attributes:
        database_url: SQLAlchemy URL of the record store.
        echo_sql: Log every SQL statement.
        bill_storage_root: Directory of the filesystem object store.
        bill_url_ttl_seconds: Lifetime of temporary bill URLs.
        bill_url_base: Public prefix of temporary bill URLs.
        storage_secret: HMAC key used to sign bill URLs.
        default_company_name: The single company trucks are registered under.
        default_closed_by: Actor recorded when a close names none.
        currency_symbol: Prefix of rendered amounts.
        close_requires_settlement: Reject closing while payments do not
            cover revenue.  False only records the outstanding amount.
        log_level: Level name for the fleet_kernel logger hierarchy.
    """

    database_url: str = "sqlite:///fleet_ledger.db"
    echo_sql: bool = False
    bill_storage_root: str = "bills"
    bill_url_ttl_seconds: int = 600
    bill_url_base: str = "http://localhost:8000/bills"
    storage_secret: str = "change-me"
    default_company_name: str = "Logisco"
    default_closed_by: str = "operator"
    currency_symbol: str = "₹"
    close_requires_settlement: bool = True
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.bill_url_ttl_seconds <= 0:
            raise ValueError(
                f"bill_url_ttl_seconds must be positive, got {self.bill_url_ttl_seconds}"
            )
        if not self.storage_secret:
            raise ValueError("storage_secret must not be empty")
        if not self.default_company_name.strip():
            raise ValueError("default_company_name must not be empty")
        if not self.default_closed_by.strip():
            raise ValueError("default_closed_by must not be empty")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log_level: {self.log_level!r}")

    @property
    def log_level_number(self) -> int:
        return logging.getLevelName(self.log_level.upper())

    @classmethod
    def field_names(cls) -> frozenset[str]:
        return frozenset(f.name for f in fields(cls))

    def public_dict(self) -> dict:
        """All settings except the storage secret."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "storage_secret"
        }
