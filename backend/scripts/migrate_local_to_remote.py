#!/usr/bin/env python3
"""
migrate_local_to_remote.py - thin entry point for MigrationEngine.

Reads the on-device collections under LOCAL_STORE_PATH and imports them into
the remote store with the service credential tier
(REMOTE_SERVICE_ROLE / REMOTE_SERVICE_KEY). Options come from the
environment:

    MIGRATION_SKIP_EXISTING         default true
    MIGRATION_DRY_RUN               default false
    MIGRATION_CREATE_AUTH_ACCOUNTS  default true (only warned about)

Usage: python -m scripts.migrate_local_to_remote
"""

import asyncio
import logging
from pathlib import Path
import sys

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from pydantic_settings import BaseSettings, SettingsConfigDict  # noqa: E402

from tanker.core.log_config import configure_logging  # noqa: E402
from tanker.migration import MigrationEngine  # noqa: E402
from tanker.repositories.factory import AdapterFactory  # noqa: E402
from tanker.schemas.migration import MigrationOptions  # noqa: E402

logger = logging.getLogger("migrate_local_to_remote")


class MigrationEnv(BaseSettings):
    skip_existing: bool = True
    dry_run: bool = False
    create_auth_accounts: bool = True

    model_config = SettingsConfigDict(env_prefix="MIGRATION_", extra="ignore")


async def migrate() -> int:
    env = MigrationEnv()
    options = MigrationOptions(**env.model_dump())

    source = AdapterFactory.create_local_adapter()
    target = AdapterFactory.create_remote_adapter("service")
    try:
        await source.initialize()
        await target.initialize()
        engine = MigrationEngine(source, target)
        report = await engine.run(options)
        if not options.dry_run:
            validation = await engine.validate_migration()
            if not validation.valid:
                logger.warning(f"Integrity check found {len(validation.issues)} issue(s)")
    finally:
        await source.close()
        await target.close()

    return 0 if report.success else 1


def main() -> int:
    configure_logging()
    return asyncio.run(migrate())


if __name__ == "__main__":
    sys.exit(main())
