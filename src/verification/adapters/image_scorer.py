"""Package image scorer - adapter for the external visual authenticity service."""

import abc
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
import requests

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageScore:
    """Untrusted, advisory judgment about a package photo."""
    authenticity_label: str
    confidence: float  # in [0, 1]
    details: str = ""


class AbstractImageScorer(abc.ABC):
    """Abstract base class for image scorer implementations."""

    @abc.abstractmethod
    def score(self, image_ref: str) -> ImageScore:
        """
        Score the package image behind ``image_ref`` (an upload URL or object key).

        Raises:
            ImageScorerError: If the scorer cannot be reached or answers garbage
        """
        raise NotImplementedError


class HTTPImageScorer(AbstractImageScorer):
    """HTTP client for the image scoring service."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        """
        Args:
            base_url: Base URL of the scoring service. If None, uses config.
            timeout: Request timeout in seconds. If None, uses the store timeout.
        """
        self.base_url = base_url or config.get_image_scorer_url()
        self.timeout = timeout if timeout is not None else config.get_store_timeout_seconds()

    def score(self, image_ref: str) -> ImageScore:
        url = f"{self.base_url}/api/v1/score"

        logger.info(f"Scoring package image {image_ref} via {url}")

        try:
            response = requests.post(url, json={"image_ref": image_ref}, timeout=self.timeout)
            response.raise_for_status()
            return parse_score(response.json())

        except requests.exceptions.HTTPError as e:
            logger.error(f"HTTP error scoring image {image_ref}: {e}")
            raise ImageScorerError(f"Image scorer rejected request: {e}") from e

        except requests.exceptions.RequestException as e:
            logger.error(f"Network error scoring image {image_ref}: {e}")
            raise ImageScorerError(f"Network error: {e}") from e

        except ValueError as e:
            logger.error(f"Malformed answer scoring image {image_ref}: {e}")
            raise ImageScorerError(f"Malformed scorer response: {e}") from e


def parse_score(payload: Dict[str, Any]) -> ImageScore:
    """Build an ImageScore from a scorer payload, clamping confidence into [0, 1]."""
    try:
        label = str(payload["authenticity_label"])
        confidence = float(payload["confidence"])
    except (KeyError, TypeError) as e:
        raise ValueError(f"missing field in scorer payload: {e}") from e

    if confidence != confidence:  # NaN
        raise ValueError("confidence is NaN")
    if not 0.0 <= confidence <= 1.0:
        logger.warning(f"Clamping out-of-range confidence {confidence}")
        confidence = min(max(confidence, 0.0), 1.0)

    return ImageScore(
        authenticity_label=label,
        confidence=confidence,
        details=str(payload.get("details") or ""),
    )


class ImageScorerError(Exception):
    """Exception raised for errors in the image scorer client."""
    pass
