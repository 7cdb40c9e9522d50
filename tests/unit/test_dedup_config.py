import pytest

from mailsync.config import Settings
from mailsync.features.deduplication.domain import ErrorStrategy


def test_detector_config_from_settings():
    config = Settings(
        DEDUP_ERROR_STRATEGY="fail-closed",
        DEDUP_BATCH_CONCURRENCY=0,
        DEDUP_TIME_WINDOW_MINUTES=2,
    ).get_detector_config()

    assert config.error_strategy is ErrorStrategy.FAIL_CLOSED
    assert config.batch_concurrency == 1
    assert config.time_window_seconds == 120
    assert config.confidence_threshold == 0.85
    assert config.candidate_limit == 50


def test_unknown_error_strategy_is_rejected():
    with pytest.raises(ValueError, match="fail_open"):
        ErrorStrategy.parse("ignore")


def test_development_pool_is_capped():
    config = Settings(environment="development", DB_POOL_MAX_SIZE=30).get_db_pool_config()

    assert config["max_size"] == 5
