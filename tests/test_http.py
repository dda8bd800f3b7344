"""Tests for the HTTP layer and the backend adapters built on it."""

from __future__ import annotations

import io
import json
import sys
import urllib.error
import urllib.parse
from pathlib import Path
from unittest.mock import MagicMock, Mock, patch

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api import (
    AuthenticationError,
    Backends,
    BackendNotConfigured,
    DecodeError,
    ServerError,
    TransportError,
    build_backends,
)
from api.datto_av import DattoAvClient
from api.http import HttpClient, basic_auth_header
from api.rmm import RmmClient
from api.rocket_cyber import RocketCyberClient
from api.sophos import SophosClient, find_tenant
from api.types import Component, ComponentVariable, Device, Site, SophosTenant
from common.config import Config


def _response(body, status=200):
    if not isinstance(body, (bytes, str)):
        body = json.dumps(body)
    if isinstance(body, str):
        body = body.encode("utf-8")
    response = MagicMock()
    response.getcode.return_value = status
    response.read.return_value = body
    context = MagicMock()
    context.__enter__.return_value = response
    return context


def _http_error(code, body=b""):
    return urllib.error.HTTPError("https://example.test", code, "error", {}, io.BytesIO(body))


@pytest.fixture
def urlopen():
    with patch("api.http.urllib.request.urlopen") as mocked:
        yield mocked


def _sent(urlopen, index=-1):
    """The urllib Request object of a recorded call."""
    return urlopen.call_args_list[index][0][0]


def _query(request):
    return dict(urllib.parse.parse_qsl(urllib.parse.urlsplit(request.full_url).query))


@pytest.fixture
def rmm(urlopen):
    urlopen.return_value = _response({"access_token": "tok"})
    client = RmmClient("https://rmm.test/", "key", "secret")
    client.authenticate()
    urlopen.reset_mock()
    return client


# HttpClient -------------------------------------------------------------------

def test_url_building():
    client = HttpClient("https://api.test/")
    assert client.url("/a/b") == "https://api.test/a/b"
    assert client.url("a", {"x": 1, "skip": None}) == "https://api.test/a?x=1"
    assert client.url("https://other.test/z") == "https://other.test/z"
    assert client.url("a", [("id", 1), ("id", 2)]) == "https://api.test/a?id=1&id=2"


def test_json_body_and_headers(urlopen):
    urlopen.return_value = _response({"ok": True})
    result = HttpClient("https://api.test").request("POST", "/x", json_body={"a": 1}, headers={"authorization": "t"})

    request = _sent(urlopen)
    assert result == {"ok": True}
    assert request.get_method() == "POST"
    assert json.loads(request.data) == {"a": 1}
    assert request.get_header("Authorization") == "t"
    assert request.get_header("Content-type") == "application/json"


def test_empty_body(urlopen):
    client = HttpClient("https://api.test")
    urlopen.return_value = _response(b"")
    assert client.request("POST", "/x", allow_empty=True) is None

    urlopen.return_value = _response(b"")
    with pytest.raises(DecodeError):
        client.request("GET", "/x")


def test_invalid_json(urlopen):
    urlopen.return_value = _response(b"<html>")
    with pytest.raises(DecodeError, match="Failed to parse"):
        HttpClient("https://api.test", name="Thing").request("GET", "/x")


@pytest.mark.parametrize(
    "error, expected",
    [
        (_http_error(401, b"nope"), AuthenticationError),
        (_http_error(403), AuthenticationError),
        (_http_error(500, b"boom"), ServerError),
        (urllib.error.URLError("unreachable"), TransportError),
        (TimeoutError("slow"), TransportError),
    ],
)
def test_error_mapping(urlopen, error, expected):
    urlopen.side_effect = error
    with pytest.raises(expected):
        HttpClient("https://api.test").request("GET", "/x")


def test_server_error_message(urlopen):
    urlopen.side_effect = _http_error(404, b"missing")
    with pytest.raises(ServerError) as info:
        HttpClient("https://api.test").request("GET", "/x")
    assert info.value.status == 404
    assert str(info.value) == "API request failed with status: 404 - missing"


def test_basic_auth_header():
    assert basic_auth_header("public-client", "public") == "Basic cHVibGljLWNsaWVudDpwdWJsaWM="


# Datto RMM --------------------------------------------------------------------

def test_rmm_authenticate(urlopen):
    urlopen.return_value = _response({"access_token": "tok"})
    RmmClient("https://rmm.test", "key", "secret").authenticate()

    request = _sent(urlopen)
    assert request.full_url == "https://rmm.test/auth/oauth/token"
    assert request.get_header("Authorization") == basic_auth_header("public-client", "public")
    form = dict(urllib.parse.parse_qsl(request.data.decode()))
    assert form == {"grant_type": "password", "username": "key", "password": "secret"}


def test_rmm_requires_token():
    client = RmmClient("https://rmm.test", "key", "secret")
    with pytest.raises(AuthenticationError):
        client.get_site("s")


def test_rmm_authenticate_without_token(urlopen):
    urlopen.return_value = _response({"error": "invalid_grant"})
    with pytest.raises(DecodeError):
        RmmClient("https://rmm.test", "key", "secret").authenticate()


def test_get_sites(rmm, urlopen):
    urlopen.return_value = _response(
        {
            "sites": [
                {"uid": "b", "name": "beta", "devicesStatus": {"numberOfDevices": 3}},
                {"uid": "a", "name": "Alpha", "onDemand": True},
            ],
            "pageDetails": {"count": 2, "totalCount": 2},
        }
    )
    page = rmm.get_sites(page=1, max_results=25)

    request = _sent(urlopen)
    assert request.get_header("Authorization") == "Bearer tok"
    assert _query(request) == {"page": "1", "max": "25"}
    assert [site.name for site in page.sites] == ["Alpha", "beta"]
    assert page.sites[0].on_demand
    assert page.sites[1].devices_status.number_of_devices == 3


def test_update_site_with_empty_response_keeps_local_values(rmm, urlopen):
    urlopen.return_value = _response(b"")
    site = Site(uid="s1", name="Acme", on_demand=False, variables=())

    updated = rmm.update_site(site, on_demand=True)

    request = _sent(urlopen)
    assert request.full_url == "https://rmm.test/api/v2/site/s1"
    assert json.loads(request.data) == {
        "name": "Acme",
        "description": None,
        "notes": None,
        "onDemand": True,
        "splashtopAutoInstall": False,
    }
    assert updated.on_demand is True
    assert updated.variables == ()


def test_update_site_uses_response(rmm, urlopen):
    urlopen.return_value = _response({"uid": "s1", "name": "Renamed"})
    updated = rmm.update_site(Site(uid="s1", name="Acme"), name="Renamed")
    assert updated.name == "Renamed"


def test_create_site_variable(rmm, urlopen):
    urlopen.return_value = _response({"id": 9, "name": "n", "value": "v", "masked": True})
    variable = rmm.create_site_variable("s1", "n", "v", masked=True)

    request = _sent(urlopen)
    assert request.get_method() == "PUT"
    assert request.full_url == "https://rmm.test/api/v2/site/s1/variable"
    assert variable.id == 9
    assert variable.masked


def test_update_site_variable_empty_response(rmm, urlopen):
    urlopen.return_value = _response(b"")
    variable = rmm.update_site_variable("s1", 4, "n", "v2")
    assert _sent(urlopen).full_url == "https://rmm.test/api/v2/site/s1/variable/4"
    assert (variable.id, variable.value) == (4, "v2")


def test_device_activity_logs_filter_by_device(rmm, urlopen):
    urlopen.return_value = _response(
        {
            "activities": [
                {"id": "1", "deviceId": 10, "details": json.dumps({"job.uid": "j1", "job.name": "Run"})},
                {"id": "2", "deviceId": 11},
            ]
        }
    )
    logs = rmm.get_device_activity_logs(Device(uid="d", hostname="h", id=10, site_id=5))

    assert _query(_sent(urlopen))["siteIds"] == "5"
    assert [log.id for log in logs] == ["1"]
    assert logs[0].job_uid == "j1"
    assert logs[0].job_name == "Run"


def test_set_udf(rmm, urlopen):
    urlopen.return_value = _response(b"")
    device = rmm.set_device_udf(Device(uid="d", hostname="h"), 4, "tag")

    request = _sent(urlopen)
    assert request.full_url == "https://rmm.test/api/v2/device/d/udf"
    assert json.loads(request.data) == {"udf5": "tag"}
    assert device.udf[4] == "tag"


def test_move_device(rmm, urlopen):
    urlopen.return_value = _response(b"")
    moved = rmm.move_device(Device(uid="d", hostname="h", site_uid="s1"), Site(uid="s2", name="Branch", id=2))

    request = _sent(urlopen)
    assert request.get_method() == "PUT"
    assert request.full_url == "https://rmm.test/api/v2/device/d/site/s2"
    assert (moved.site_uid, moved.site_id, moved.site_name) == ("s2", 2, "Branch")


def test_run_quick_job(rmm, urlopen):
    urlopen.return_value = _response({"job": {"id": 1, "uid": "j", "name": "Run Cleanup", "status": "active"}})
    component = Component(uid="c1", name="Cleanup", variables=(ComponentVariable(name="path"),))

    job = rmm.run_quick_job("d", component, {"path": "C:\\"})

    body = json.loads(_sent(urlopen).data)
    assert body == {
        "jobName": "Run Cleanup",
        "jobComponent": {"componentUid": "c1", "variables": [{"name": "path", "value": "C:\\"}]},
    }
    assert (job.name, job.status) == ("Run Cleanup", "active")


def test_job_stdout_accepts_single_object(rmm, urlopen):
    urlopen.return_value = _response({"componentName": "Script", "stdData": "hello"})
    output = rmm.get_job_stdout("j", "d")
    assert _sent(urlopen).full_url == "https://rmm.test/api/v2/job/j/results/d/stdout"
    assert output[0].std_data == "hello"


# Security backends -----------------------------------------------------------

def test_datto_av_agent_lookup(urlopen):
    urlopen.return_value = _response([{"id": "a1", "hostname": "host-1", "status": "online"}])
    agents = DattoAvClient("https://av.test", "raw-secret").get_agent_details("HOST-1")

    request = _sent(urlopen)
    assert request.get_header("Authorization") == "raw-secret"
    assert json.loads(_query(request)["filter"]) == {"where": {"hostname": "host-1"}}
    assert agents[0].id == "a1"


def test_datto_av_scan(urlopen):
    urlopen.return_value = _response(b"")
    DattoAvClient("https://av.test", "s").scan_agent("a1")
    request = _sent(urlopen)
    assert request.full_url == "https://av.test/api/Agents/scan"
    assert json.loads(request.data) == {"id": "a1"}


def test_rocket_cyber_strips_version_suffix(urlopen):
    urlopen.return_value = _response(
        {"data": [{"id": 1, "title": "t", "status": "active", "accountId": 5, "accountName": "Acme"}]}
    )
    incidents = RocketCyberClient("https://rc.test/v3/", "k").get_incidents()

    request = _sent(urlopen)
    assert request.full_url.startswith("https://rc.test/v3/incidents?")
    assert request.get_header("Authorization") == "Bearer k"
    assert incidents[0].account_name == "Acme"


def test_sophos_authenticate_and_tenants(urlopen):
    urlopen.side_effect = [
        _response({"access_token": "stok"}),
        _response({"id": "partner-1"}),
        _response({"items": [{"id": "t1", "name": "Acme", "dataRegion": "eu01"}]}),
    ]
    client = SophosClient("cid", "csecret")
    client.authenticate()
    tenants = client.get_tenants()

    assert _sent(urlopen, 0).full_url == "https://id.sophos.com/api/v2/oauth2/token"
    assert _sent(urlopen, 1).get_header("Authorization") == "Bearer stok"
    assert _sent(urlopen, 2).get_header("X-partner-id") == "partner-1"
    assert tenants == [SophosTenant(id="t1", name="Acme", data_region="eu01")]


def test_sophos_endpoints_use_regional_host(urlopen):
    urlopen.side_effect = [
        _response({"access_token": "stok"}),
        _response({"id": "partner-1"}),
        _response({"items": [{"id": "e1", "hostname": "HOST-1", "health": {"overall": "good"}}]}),
    ]
    client = SophosClient("cid", "csecret")
    client.authenticate()
    endpoints = client.get_endpoints("t1", "eu01", "HOST-1")

    request = _sent(urlopen)
    assert request.full_url.startswith("https://api-eu01.central.sophos.com/endpoint/v1/endpoints?")
    assert request.get_header("X-tenant-id") == "t1"
    assert endpoints[0].health == "good"
    assert (endpoints[0].tenant_id, endpoints[0].data_region) == ("t1", "eu01")


def test_find_tenant():
    tenants = [SophosTenant(id="t1", name="Acme Corp", data_region="eu01")]
    assert find_tenant(tenants, "ACME CORP") == tenants[0]
    assert find_tenant(tenants, "Globex") is None
    assert find_tenant(tenants, None) is None


# Backends ---------------------------------------------------------------------

def test_backends_require_optional_adapters():
    backends = Backends(rmm=Mock())
    with pytest.raises(BackendNotConfigured, match="Datto AV is not configured"):
        backends.require_datto_av()
    with pytest.raises(BackendNotConfigured):
        backends.require_sophos()
    with pytest.raises(BackendNotConfigured):
        backends.require_rocket_cyber()


def _config(**env):
    base = {"DATTO_API_URL": "https://rmm.test", "DATTO_API_KEY": "k", "DATTO_SECRET_KEY": "s"}
    base.update(env)
    return Config.from_env(env=base)


def test_build_backends_disables_failing_sophos(urlopen):
    urlopen.side_effect = [_response({"access_token": "tok"}), _http_error(401, b"bad client")]
    backends = build_backends(_config(SOPHOS_CLIENT_ID="c", SOPHOS_CLIENT_SECRET="x"))
    assert backends.sophos is None
    assert backends.datto_av is None


def test_build_backends_propagates_rmm_failure(urlopen):
    urlopen.side_effect = _http_error(401, b"bad key")
    with pytest.raises(AuthenticationError):
        build_backends(_config())
