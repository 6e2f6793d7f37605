"""Retry policy for idempotent store calls (reads, existence checks, creation by code)."""

import logging

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from shared.domain.exceptions import BackendUnavailable

logger = logging.getLogger(__name__)

# Never apply to custody appends or status changes: a timed-out append may
# already be durable and a retry would duplicate it.
idempotent_retry = retry(
    retry=retry_if_exception_type(BackendUnavailable),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.05, max=1),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
