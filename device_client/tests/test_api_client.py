# device_client/tests/test_api_client.py
from unittest.mock import MagicMock

import pytest
import requests

from device_client.api.api_client import ApiClient, ApiError


def _response(status_code=200, json_body=None, text=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = text if text is not None else ("" if json_body is None else "{...}")
    resp.json.return_value = json_body
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


def test_session_carries_client_certificate(session):
    ApiClient("https://localhost:8443/", cert=("dev.crt", "dev.key"), ca_file="ca.crt",
              session=session)
    assert session.cert == ("dev.crt", "dev.key")
    assert session.verify == "ca.crt"


def test_authenticate_sends_no_bearer(session):
    session.request.return_value = _response(json_body={"id": "d1"})
    client = ApiClient("https://localhost:8443/", token="tok", session=session)

    assert client.authenticate() == {"id": "d1"}

    kwargs = session.request.call_args.kwargs
    assert kwargs["method"] == "POST"
    assert kwargs["url"] == "https://localhost:8443/api/v1/devices/authenticate"
    assert "Authorization" not in kwargs["headers"]


def test_user_calls_send_bearer(session):
    session.request.return_value = _response(json_body={"message": "ok"})
    client = ApiClient("https://api", token="tok", session=session, timeout=3)

    client.unassign("d1")

    kwargs = session.request.call_args.kwargs
    assert kwargs["method"] == "DELETE"
    assert kwargs["url"] == "https://api/api/v1/devices/d1/unassign"
    assert kwargs["headers"]["Authorization"] == "Bearer tok"
    assert kwargs["timeout"] == 3


def test_fastapi_detail_is_surfaced(session):
    session.request.return_value = _response(409, json_body={"detail": "Device is already assigned"})
    client = ApiClient("https://api", token="tok", session=session)

    with pytest.raises(ApiError) as exc:
        client.assign("d1")

    assert exc.value.status_code == 409
    assert "Device is already assigned" in str(exc.value)


def test_non_json_error_body(session):
    resp = _response(502, text="Bad Gateway")
    resp.json.side_effect = ValueError("no json")
    session.request.return_value = resp

    with pytest.raises(ApiError, match="HTTP 502: Bad Gateway"):
        ApiClient("https://api", session=session).health()


def test_network_error(session):
    session.request.side_effect = requests.ConnectionError("refused")

    with pytest.raises(ApiError, match="Network error") as exc:
        ApiClient("https://api", session=session).my_devices()

    assert exc.value.status_code is None


def test_empty_body(session):
    session.request.return_value = _response(200, text="  ")
    assert ApiClient("https://api", session=session).health() == {}


@pytest.mark.parametrize("body", [["upstream", "failure"], "upstream failure", 503])
def test_json_error_body_that_is_not_an_object(session, body):
    session.request.return_value = _response(503, json_body=body, text="upstream failure")

    with pytest.raises(ApiError, match="HTTP 503: upstream failure") as exc:
        ApiClient("https://api", session=session).health()

    assert exc.value.status_code == 503
