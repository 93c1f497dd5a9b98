"""
Tests for the remote classifier client. HTTP calls are replaced with fakes.
"""

import pytest
import requests

from motion_intent.core import remote_classifier
from motion_intent.core.data_types import Direction, MovementFeatures
from motion_intent.core.errors import RemoteClassifierError
from motion_intent.core.remote_classifier import RemoteClassifierClient, RemoteVerdict


def make_features(magnitude=50.0, jitter=1.0):
    return MovementFeatures(
        landmark='right_wrist', velocity_x=120.0, velocity_y=-50.0, acceleration=20.0,
        jitter=jitter, direction=Direction.RIGHT, is_smooth=True, magnitude=magnitude,
        duration=0.4, is_reversing=False, frequency=1.0, steadiness=0.9,
        pattern_score=0.8, continuity=1.0, timestamp=3.0,
    )


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self.ok = 200 <= status_code < 300
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no JSON")
        return self._body


def prediction(tag='intentional', probability=0.9):
    other = 'unintentional' if tag == 'intentional' else 'intentional'
    return {'predictions': [
        {'tagName': tag, 'probability': probability},
        {'tagName': other, 'probability': 1.0 - probability},
    ]}


@pytest.fixture
def http(monkeypatch):
    """Records posts and sleeps; responses are queued in `responses`."""
    calls = {'posts': [], 'sleeps': [], 'responses': []}

    def fake_post(url, json=None, headers=None, timeout=None):
        calls['posts'].append({'url': url, 'json': json, 'headers': headers, 'timeout': timeout})
        response = calls['responses'].pop(0) if len(calls['responses']) > 1 else calls['responses'][0]
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(remote_classifier.requests, 'post', fake_post)
    monkeypatch.setattr(remote_classifier.time, 'sleep', calls['sleeps'].append)
    return calls


def make_client(**kwargs):
    return RemoteClassifierClient('https://example.test/', 'secret', model_id='m1', **kwargs)


def test_disabled_without_endpoint_or_key(http):
    assert not RemoteClassifierClient('', 'secret').enabled
    assert not RemoteClassifierClient('https://example.test', '').enabled
    assert RemoteClassifierClient('', '').classify(make_features()) is None
    assert http['posts'] == []


def test_successful_classification(http):
    http['responses'].append(FakeResponse(200, prediction('intentional', 0.9)))
    client = make_client(timeout=2.5)

    verdict = client.classify(make_features())

    assert verdict == RemoteVerdict(is_intentional=True, confidence=0.9)
    post = http['posts'][0]
    assert post['url'] == ('https://example.test/customvision/v3.0/prediction/m1'
                           '/classify/iterations/latest/image')
    assert post['headers'] == {'Prediction-Key': 'secret', 'Content-Type': 'application/json'}
    assert post['timeout'] == 2.5
    body = post['json']['features']
    assert body['keypoint'] == 'right_wrist'
    assert body['velocityVector'] == [120.0, -50.0]
    assert body['velocityMagnitude'] == pytest.approx(130.0)
    assert body['direction'] == 'right'


def test_unintentional_tag(http):
    http['responses'].append(FakeResponse(200, prediction('unintentional', 0.8)))
    verdict = make_client().classify(make_features())
    assert not verdict.is_intentional
    assert verdict.confidence == pytest.approx(0.8)


def test_verdicts_are_cached(http):
    http['responses'].append(FakeResponse(200, prediction()))
    client = make_client()

    first = client.classify(make_features())
    assert client.classify(make_features()) == first
    assert len(http['posts']) == 1

    client.classify(make_features(magnitude=80.0))
    assert len(http['posts']) == 2

    client.clear_cache()
    client.classify(make_features())
    assert len(http['posts']) == 3


def test_server_errors_retry_with_backoff(http):
    http['responses'].append(FakeResponse(503))
    client = make_client()

    assert client.classify(make_features()) is None
    assert len(http['posts']) == 4
    assert http['sleeps'] == pytest.approx([0.3, 0.6, 1.2])
    assert client.failure_count == 1
    assert '503' in client.last_error


def test_recovers_after_transient_failure(http):
    http['responses'].extend([
        requests.ConnectionError("refused"),
        FakeResponse(200, prediction('intentional', 0.7)),
    ])
    verdict = make_client().classify(make_features())
    assert verdict.confidence == pytest.approx(0.7)
    assert len(http['posts']) == 2
    assert http['sleeps'] == pytest.approx([0.3])


def test_client_errors_are_not_retried(http):
    http['responses'].append(FakeResponse(401))
    assert make_client().classify(make_features()) is None
    assert len(http['posts']) == 1
    assert http['sleeps'] == []


def test_rate_limit_is_retried(http):
    http['responses'].extend([FakeResponse(429), FakeResponse(200, prediction())])
    assert make_client().classify(make_features()) is not None
    assert len(http['posts']) == 2


def test_timeouts_exhaust_retries(http):
    http['responses'].append(requests.Timeout("slow"))
    client = make_client(retry_count=1)
    assert client.classify(make_features()) is None
    assert len(http['posts']) == 2


@pytest.mark.parametrize('response', [
    FakeResponse(200, None),
    FakeResponse(200, {'predictions': []}),
    FakeResponse(200, {'result': 'ok'}),
    FakeResponse(200, {'predictions': [{'tagName': 'maybe', 'probability': 0.9}]}),
])
def test_malformed_responses(http, response):
    http['responses'].append(response)
    client = make_client()
    assert client.classify(make_features()) is None
    assert client.failure_count == 1


def test_parse_response_errors():
    with pytest.raises(RemoteClassifierError):
        RemoteClassifierClient.parse_response({'predictions': [{'tagName': 'intentional'}]})


def test_should_consult():
    client = make_client(min_magnitude=10.0)
    assert client.should_consult(make_features(magnitude=50.0))
    assert not client.should_consult(make_features(magnitude=5.0))
    assert not RemoteClassifierClient('', '').should_consult(make_features())
