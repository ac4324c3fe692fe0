from __future__ import annotations

from loguru import logger

from app.core.config import Settings, load_settings
from app.core.logging import setup_logging
from app.db import create_schema, init_engine
from app.services.directory import SqlListDirectory
from app.services.notifier import ChangeNotifier, LogNotifier, SqlChangeLedger
from app.services.rounds import RoundLifecycle


def build_lifecycle(settings: Settings) -> RoundLifecycle:
    return RoundLifecycle(
        directory=SqlListDirectory(),
        notifier=ChangeNotifier(notifier=LogNotifier(), ledger=SqlChangeLedger()),
        draw_max_steps=settings.draw_max_steps,
        default_currency=settings.default_currency,
    )


def main() -> RoundLifecycle:
    settings = load_settings()
    setup_logging(settings.log_level, settings.log_path)

    logger.info("round engine starting...")
    engine = init_engine(settings.database_url)
    create_schema(engine)
    lifecycle = build_lifecycle(settings)
    logger.bind(database=engine.url.render_as_string(hide_password=True)).info("round engine ready")
    return lifecycle


if __name__ == "__main__":
    main()
