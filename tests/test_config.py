import pytest
from pydantic import ValidationError

from substack_wxr.config import CommentStatus, ConverterConfig, PollConfig, ResumeMode


def test_converter_config_defaults() -> None:
    config = ConverterConfig()
    assert config.batch_size == 10
    assert config.resume_mode == ResumeMode.RESUME
    assert config.author_login == "admin"
    assert config.default_comment_status == CommentStatus.OPEN


def test_converter_config_requires_positive_batch_size() -> None:
    with pytest.raises(ValidationError):
        ConverterConfig(batch_size=0)


def test_poll_config_requires_max_interval_not_below_interval() -> None:
    with pytest.raises(ValidationError):
        PollConfig(interval_seconds=5.0, max_interval_seconds=1.0)


def test_poll_config_rejects_shrinking_backoff() -> None:
    with pytest.raises(ValidationError):
        PollConfig(backoff_factor=0.5)
