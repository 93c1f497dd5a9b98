"""
Remote intention classifier client.

Posts movement features to a Custom Vision style prediction endpoint and
turns the tag probabilities into a verdict. The remote service is best
effort: every failure (network error, timeout, non-2xx status, malformed
body) is logged and reported as None, and the detector keeps its local
verdict.
"""

import logging
import time
from dataclasses import dataclass

import requests

from motion_intent.config import RemoteClassifierConfig
from motion_intent.core.errors import RemoteClassifierError

logger = logging.getLogger(__name__)

INTENTIONAL_TAG = 'intentional'
UNINTENTIONAL_TAG = 'unintentional'


@dataclass(frozen=True)
class RemoteVerdict:
    is_intentional: bool
    confidence: float


class RemoteClassifierClient:
    """
    HTTP client for a remote intention classifier.
    """

    def __init__(self, endpoint, api_key, model_id=RemoteClassifierConfig.DEFAULT_MODEL_ID,
                 timeout=RemoteClassifierConfig.REQUEST_TIMEOUT,
                 retry_count=RemoteClassifierConfig.RETRY_COUNT,
                 retry_base_delay=RemoteClassifierConfig.RETRY_BASE_DELAY,
                 cache_validity=RemoteClassifierConfig.CACHE_VALIDITY,
                 min_magnitude=RemoteClassifierConfig.MIN_MAGNITUDE):
        """
        Initialize the client.

        Args:
            endpoint (str): Service base URL
            api_key (str): Prediction key sent with every request
            model_id (str): Published model identifier
            timeout (float): Per-request timeout (seconds)
            retry_count (int): Retries after the first attempt
            retry_base_delay (float): First backoff delay, doubled after each failure
            cache_validity (float): Seconds a verdict is reused for identical features
            min_magnitude (float): Only movements larger than this are sent
        """
        self.endpoint = endpoint.rstrip('/') if endpoint else ''
        self.api_key = api_key or ''
        self.model_id = model_id
        self.timeout = timeout
        self.retry_count = max(0, int(retry_count))
        self.retry_base_delay = retry_base_delay
        self.cache_validity = cache_validity
        self.min_magnitude = min_magnitude

        self._cache = {}
        self.failure_count = 0
        self.last_error = ''

        if self.enabled:
            logger.info(f"Remote classifier configured at {self.endpoint} (model {model_id})")

    @property
    def enabled(self):
        return bool(self.endpoint and self.api_key)

    @property
    def url(self):
        return (f"{self.endpoint}/customvision/v3.0/prediction/{self.model_id}"
                f"/classify/iterations/latest/image")

    def should_consult(self, features):
        return self.enabled and features.magnitude > self.min_magnitude

    @staticmethod
    def build_payload(features):
        """
        Flatten MovementFeatures into the request body.
        """
        return {
            'features': {
                'keypoint': features.landmark,
                'velocityVector': [features.velocity_x, features.velocity_y],
                'velocityMagnitude': features.speed,
                'acceleration': features.acceleration,
                'jitter': features.jitter,
                'direction': features.direction.value,
                'isSmooth': features.is_smooth,
                'magnitudeOfMovement': features.magnitude,
                'durationOfMovement': features.duration,
                'isReversing': features.is_reversing,
                'frequencyOfMovement': features.frequency,
                'steadiness': features.steadiness,
                'patternScore': features.pattern_score,
                'continuity': features.continuity,
            }
        }

    @staticmethod
    def parse_response(body):
        """
        Pick the most probable tag from a prediction response.

        Raises:
            RemoteClassifierError: If the body holds no usable prediction
        """
        try:
            predictions = body['predictions']
            best = max(predictions, key=lambda p: float(p['probability']))
            tag = best['tagName']
            probability = float(best['probability'])
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteClassifierError(f"Malformed prediction response: {e}") from e

        if tag not in (INTENTIONAL_TAG, UNINTENTIONAL_TAG):
            raise RemoteClassifierError(f"Unexpected tag '{tag}'")

        return RemoteVerdict(is_intentional=tag == INTENTIONAL_TAG, confidence=probability)

    @staticmethod
    def _cache_key(features):
        return (features.landmark, round(features.magnitude), features.direction.value,
                round(features.jitter, 1), round(features.steadiness, 2))

    def classify(self, features):
        """
        Ask the remote service for a verdict.

        Args:
            features (MovementFeatures): Features of one landmark

        Returns:
            RemoteVerdict: Verdict, or None if the service is unavailable
        """
        if not self.enabled:
            return None

        key = self._cache_key(features)
        now = time.monotonic()
        cached = self._cache.get(key)
        if cached is not None and now - cached[0] < self.cache_validity:
            return cached[1]

        try:
            body = self._post_with_retries(self.build_payload(features))
            verdict = self.parse_response(body)
        except RemoteClassifierError as e:
            self.failure_count += 1
            self.last_error = str(e)
            logger.warning(f"Remote classifier unavailable, using local prediction: {e}")
            return None

        self._cache[key] = (time.monotonic(), verdict)
        self._prune_cache()
        return verdict

    def _prune_cache(self):
        now = time.monotonic()
        expired = [k for k, (ts, _) in self._cache.items() if now - ts >= self.cache_validity]
        for k in expired:
            del self._cache[k]

    def _post_with_retries(self, payload):
        headers = {
            'Prediction-Key': self.api_key,
            'Content-Type': 'application/json',
        }
        last_error = None

        for attempt in range(self.retry_count + 1):
            try:
                resp = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
            except requests.RequestException as e:
                last_error = e
            else:
                if resp.ok:
                    try:
                        return resp.json()
                    except ValueError as e:
                        raise RemoteClassifierError(f"Invalid JSON in response: {e}") from e

                last_error = RemoteClassifierError(f"HTTP {resp.status_code}")
                # Client errors will not succeed on retry, except rate limiting
                if 400 <= resp.status_code < 500 and resp.status_code != 429:
                    break

            if attempt < self.retry_count:
                delay = self.retry_base_delay * (2 ** attempt)
                logger.debug(f"Remote request failed ({last_error}), retrying in {delay:.1f}s")
                time.sleep(delay)

        raise RemoteClassifierError(f"Request failed after retries: {last_error}")

    def clear_cache(self):
        self._cache.clear()
