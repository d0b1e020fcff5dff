"""Tests for the GitLab transport using a fake URL opener."""

from __future__ import annotations

import asyncio
import io
import json
from pathlib import Path
from typing import Any, List
from urllib.error import HTTPError, URLError

import pytest

from promptmemo.configuration import GitlabSettings
from promptmemo.storage import TokenStore
from promptmemo.sync.errors import ApiError, AuthError, NetworkError
from promptmemo.sync.transport import GitlabTransport


class FakeOpener:
    """Replays queued responses and records the requests it receives."""

    def __init__(self, responses: List[Any]) -> None:
        self.responses = list(responses)
        self.requests = []
        self.timeouts = []

    def __call__(self, request, timeout=None):
        self.requests.append(request)
        self.timeouts.append(timeout)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        if isinstance(response, str):
            return io.BytesIO(response.encode("utf-8"))
        return io.BytesIO(json.dumps(response).encode("utf-8"))


def _http_error(code: int, body: str = "", reason: str = "Error") -> HTTPError:
    return HTTPError("https://gitlab.example.com", code, reason, {}, io.BytesIO(body.encode("utf-8")))


def _transport(tmp_path: Path, responses: List[Any], token: str = "secret", **settings) -> tuple:
    token_store = TokenStore(tmp_path / ".token", env={})
    if token:
        token_store.set_token(token)
    opener = FakeOpener(responses)
    config = {
        "domain": "https://gitlab.example.com/api/v4",
        "project_id": "group/project",
        "file_path": "prompts/prompt.json",
        "branch": "master",
        "target_branch": "master",
        "timeout": 5,
    }
    config.update(settings)
    transport = GitlabTransport(GitlabSettings(**config), token_store, opener=opener)
    return transport, opener


def test_get_file_sends_bearer_token_and_encoded_path(tmp_path: Path):
    transport, opener = _transport(tmp_path, [{"content": "e30=", "file_path": "prompts/prompt.json"}])

    data = asyncio.run(transport.get_file())

    assert data["content"] == "e30="
    request = opener.requests[0]
    assert request.get_method() == "GET"
    assert request.full_url == (
        "https://gitlab.example.com/api/v4/projects/group%2Fproject"
        "/repository/files/prompts%2Fprompt.json?ref=master"
    )
    assert request.get_header("Authorization") == "Bearer secret"
    assert request.get_header("User-agent") == "PromptMemo"
    assert opener.timeouts == [5]


def test_get_file_requires_content(tmp_path: Path):
    transport, _ = _transport(tmp_path, [{"file_path": "prompt.json"}])

    with pytest.raises(ApiError) as excinfo:
        asyncio.run(transport.get_file())

    assert excinfo.value.status == 500


def test_missing_token_raises_auth_error_without_request(tmp_path: Path):
    transport, opener = _transport(tmp_path, [], token="")

    with pytest.raises(AuthError):
        asyncio.run(transport.get_file())

    assert opener.requests == []


def test_missing_project_id_is_rejected(tmp_path: Path):
    transport, opener = _transport(tmp_path, [], project_id="")

    with pytest.raises(ApiError) as excinfo:
        asyncio.run(transport.get_file())

    assert excinfo.value.status == 400
    assert opener.requests == []


@pytest.mark.parametrize(
    "code, body, error_type, fragment",
    [
        (401, "", AuthError, "401 Unauthorized"),
        (403, "Rate limit exceeded", ApiError, "rate limit exceeded"),
        (403, "no access", ApiError, "Check token permissions"),
        (404, "missing", ApiError, "404 Not Found"),
        (500, "boom", ApiError, "GitLab API error: 500 Error. Details: boom"),
    ],
)
def test_http_errors_are_classified(tmp_path: Path, code, body, error_type, fragment):
    transport, _ = _transport(tmp_path, [_http_error(code, body)])

    with pytest.raises(error_type) as excinfo:
        asyncio.run(transport.get_file())

    assert fragment in str(excinfo.value)
    if error_type is ApiError:
        assert excinfo.value.status == code


def test_connection_failure_is_network_error(tmp_path: Path):
    transport, _ = _transport(tmp_path, [URLError("no route to host")])

    with pytest.raises(NetworkError):
        asyncio.run(transport.get_file())


def test_non_json_response_is_api_error(tmp_path: Path):
    transport, _ = _transport(tmp_path, ["<html>proxy</html>"])

    with pytest.raises(ApiError) as excinfo:
        asyncio.run(transport.get_file())

    assert excinfo.value.status == 500


def test_create_branch_posts_branch_and_ref(tmp_path: Path):
    transport, opener = _transport(tmp_path, [{"name": "update_1"}])

    asyncio.run(transport.create_branch("update_1", "master"))

    request = opener.requests[0]
    assert request.get_method() == "POST"
    assert request.full_url.endswith("/projects/group%2Fproject/repository/branches")
    assert json.loads(request.data) == {"branch": "update_1", "ref": "master"}


def test_commit_file_updates_existing_file(tmp_path: Path):
    transport, opener = _transport(
        tmp_path,
        [{"content": "e30="}, {"file_path": "prompts/prompt.json", "branch": "update_1"}],
    )

    asyncio.run(transport.commit_file("update_1", "prompts/prompt.json", "e30=", "Update prompts"))

    probe, commit = opener.requests
    assert probe.get_method() == "GET"
    assert probe.full_url.endswith("?ref=update_1")
    assert commit.get_method() == "PUT"
    assert json.loads(commit.data) == {
        "branch": "update_1",
        "content": "e30=",
        "encoding": "base64",
        "commit_message": "Update prompts",
    }


def test_commit_file_creates_missing_file(tmp_path: Path):
    transport, opener = _transport(
        tmp_path,
        [_http_error(404, "File Not Found"), {"file_path": "prompts/prompt.json"}],
    )

    asyncio.run(transport.commit_file("update_1", "prompts/prompt.json", "e30=", "Create prompts"))

    assert opener.requests[1].get_method() == "POST"


def test_commit_file_propagates_probe_failures(tmp_path: Path):
    transport, opener = _transport(tmp_path, [_http_error(500, "down")])

    with pytest.raises(ApiError):
        asyncio.run(transport.commit_file("update_1", "prompts/prompt.json", "e30=", "msg"))

    assert len(opener.requests) == 1


def test_create_merge_request_returns_web_url(tmp_path: Path):
    transport, opener = _transport(tmp_path, [{"web_url": "https://gitlab.example.com/mr/1"}])

    data = asyncio.run(transport.create_merge_request("update_1", "master", "Title", "Body"))

    assert data["web_url"] == "https://gitlab.example.com/mr/1"
    body = json.loads(opener.requests[0].data)
    assert body["source_branch"] == "update_1"
    assert body["target_branch"] == "master"
    assert body["remove_source_branch"] is True


def test_create_merge_request_requires_web_url(tmp_path: Path):
    transport, _ = _transport(tmp_path, [{"id": 1}])

    with pytest.raises(ApiError):
        asyncio.run(transport.create_merge_request("update_1", "master", "Title", "Body"))


def test_non_utf8_response_is_api_error(tmp_path: Path):
    transport, _ = _transport(tmp_path, [])
    transport._opener = lambda request, timeout=None: io.BytesIO(b"\xff\xfe not utf8")

    with pytest.raises(ApiError) as excinfo:
        asyncio.run(transport.get_file())

    assert excinfo.value.status == 500
