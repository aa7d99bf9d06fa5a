from pathlib import Path

import uvicorn
from dotenv import find_dotenv, load_dotenv
from loguru import logger

from active_habits.logging_setup import setup_logging


def _load_env() -> None:
    env_path = find_dotenv(usecwd=True)
    if not env_path:
        candidate = Path(__file__).resolve().parents[1] / ".env"
        if candidate.exists():
            env_path = str(candidate)
    if env_path:
        logger.info("Loaded .env from {}", env_path)
        load_dotenv(env_path, override=True)
    else:
        logger.warning("No .env found")


def _ensure_data_dir() -> None:
    from active_habits.config import settings

    db_dir = Path(settings.sqlite_path).parent
    if str(db_dir):
        db_dir.mkdir(parents=True, exist_ok=True)


def _run_migrations() -> None:
    from alembic import command
    from alembic.config import Config

    config_path = Path(__file__).resolve().parents[1] / "alembic.ini"
    alembic_cfg = Config(str(config_path))
    command.upgrade(alembic_cfg, "head")


def main() -> None:
    _load_env()
    setup_logging()

    from active_habits.config import settings

    logger.info(
        "active-habits starting tz={} horizon_days={} backfill={} dispatcher={}",
        settings.timezone,
        settings.horizon_days,
        settings.allow_backfill,
        settings.dispatcher_url,
    )
    _ensure_data_dir()
    if settings.run_migrations_on_start:
        _run_migrations()

    uvicorn.run("active_habits.api.app:app", host=settings.api_host, port=settings.api_port, reload=False)


if __name__ == "__main__":
    main()
