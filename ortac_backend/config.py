from datetime import UTC, datetime

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "ORTAC Adaptive Learning"
    database_url: str = "sqlite+aiosqlite:///./ortac.db"
    default_session_size: int = 10
    max_review_prefix: int = 5  # due review cards placed ahead of the topic pool
    fast_answer_ms: int = 15000  # correct answers faster than this grade as Easy
    passing_score: int = 70  # percentage
    mastery_repetitions: int = 6
    mastery_interval_days: int = 180
    min_seed_attempts: int = 3
    seed_window: int = 20  # recent attempts used for the topic accuracy seed
    conflict_retries: int = 3
    session_ttl_seconds: int = 7200  # 2 hours
    default_timezone: str = "Europe/Stockholm"
    debug: bool = False

    model_config = {"env_prefix": "ORTAC_", "env_file": ".env"}


settings = Settings()
