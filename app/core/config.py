import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: str
    log_level: str
    log_path: str
    draw_max_steps: int
    default_currency: str


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL")
    log_level = os.getenv("LOG_LEVEL", "INFO")
    log_path = os.getenv("LOG_PATH", "logs/santa.log")
    draw_max_steps = os.getenv("DRAW_MAX_STEPS", "200000")
    default_currency = os.getenv("DEFAULT_CURRENCY", "USD")

    if not database_url:
        raise ValueError("DATABASE_URL is required. Set it in the environment or .env file.")
    if not draw_max_steps.isdigit() or int(draw_max_steps) <= 0:
        raise ValueError("DRAW_MAX_STEPS must be a positive integer.")

    return Settings(
        database_url=database_url,
        log_level=log_level,
        log_path=log_path,
        draw_max_steps=int(draw_max_steps),
        default_currency=default_currency.upper(),
    )
