"""
Tests for the HTTP deploy/metrics client.
"""
from unittest.mock import MagicMock

import pytest
import requests

from phishdrill.services.industry_client import IndustryClient


def _response(payload):
    response = MagicMock()
    response.json.return_value = payload
    return response


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleep():
    return MagicMock()


@pytest.fixture
def client(session, sleep):
    return IndustryClient("http://drill.local:8000/api/v1/", session=session, sleep=sleep)


def test_deploy_posts_wire_shape(client, session, make_email):
    session.request.return_value = _response({"success": True, "deployed": 1})

    result = client.deploy_emails([make_email(id="a")])

    assert result["deployed"] == 1
    method, url = session.request.call_args.args
    assert (method, url) == ("POST", "http://drill.local:8000/api/v1/agent/deploy-emails")
    sent = session.request.call_args.kwargs["json"]["emails"][0]
    assert sent["id"] == "a"
    assert sent["senderAddress"] == "support@vmware-support.com"


def test_retries_with_growing_backoff(client, session, sleep):
    session.request.side_effect = [
        requests.ConnectionError("refused"),
        requests.Timeout("slow"),
        _response({"totalEmails": 3}),
    ]

    assert client.get_metrics() == {"totalEmails": 3}
    assert [c.args[0] for c in sleep.call_args_list] == [1, 2]


def test_deploy_raises_after_last_attempt(client, session, sleep, make_email):
    session.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(requests.ConnectionError):
        client.deploy_emails([make_email()])

    assert session.request.call_count == 3
    assert sleep.call_count == 2


def test_metrics_failure_returns_none(client, session):
    session.request.side_effect = requests.ConnectionError("refused")
    assert client.get_metrics() is None


def test_http_error_is_retried(client, session, sleep):
    bad = MagicMock()
    bad.raise_for_status.side_effect = requests.HTTPError("503")
    session.request.side_effect = [bad, _response({"bypassed": 1})]

    assert client.get_metrics() == {"bypassed": 1}
    sleep.assert_called_once_with(1)
