"""Authenticated GitLab REST calls used by the cloud service."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen

from ..configuration import GitlabSettings
from ..storage import TokenStore
from .errors import ApiError, AuthError, NetworkError

logger = logging.getLogger("promptmemo.sync.transport")

USER_AGENT = "PromptMemo"

Opener = Callable[..., Any]


class GitlabTransport:
    """Thin wrapper over the GitLab v4 API.

    Each call blocks in a worker thread so the event loop stays free; there is
    a single fixed timeout and no retry.
    """

    def __init__(
        self,
        settings: GitlabSettings,
        token_store: TokenStore,
        opener: Opener = urlopen,
    ) -> None:
        self.settings = settings
        self.token_store = token_store
        self._opener = opener

    async def get_file(self, ref: Optional[str] = None) -> Dict[str, Any]:
        """Fetch file metadata (including base64 ``content``) at a ref."""
        return await asyncio.to_thread(self._get_file, ref or self.settings.branch)

    async def create_branch(self, branch_name: str, ref: Optional[str] = None) -> Dict[str, Any]:
        return await asyncio.to_thread(self._create_branch, branch_name, ref or self.settings.branch)

    async def commit_file(
        self,
        branch_name: str,
        file_path: str,
        content_b64: str,
        commit_message: str,
    ) -> Dict[str, Any]:
        """Create or update ``file_path`` on ``branch_name``."""
        return await asyncio.to_thread(
            self._commit_file, branch_name, file_path, content_b64, commit_message
        )

    async def create_merge_request(
        self,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> Dict[str, Any]:
        return await asyncio.to_thread(
            self._create_merge_request, source_branch, target_branch, title, description
        )

    def _get_file(self, ref: str) -> Dict[str, Any]:
        data = self._request("GET", self._file_endpoint(self.settings.file_path), query={"ref": ref})
        if not isinstance(data, dict) or not isinstance(data.get("content"), str):
            raise ApiError("Invalid file metadata format from GitLab: missing 'content'.", 500)
        return data

    def _create_branch(self, branch_name: str, ref: str) -> Dict[str, Any]:
        data = self._request(
            "POST",
            f"{self._project_endpoint()}/repository/branches",
            body={"branch": branch_name, "ref": ref},
        )
        if not isinstance(data, dict) or "name" not in data:
            raise ApiError("Invalid branch creation response format.", 500)
        logger.info("Created branch %s from %s", branch_name, ref)
        return data

    def _commit_file(
        self,
        branch_name: str,
        file_path: str,
        content_b64: str,
        commit_message: str,
    ) -> Dict[str, Any]:
        endpoint = self._file_endpoint(file_path)
        method = "PUT" if self._file_exists(endpoint, branch_name) else "POST"
        data = self._request(
            method,
            endpoint,
            body={
                "branch": branch_name,
                "content": content_b64,
                "encoding": "base64",
                "commit_message": commit_message,
            },
        )
        if not isinstance(data, dict) or "file_path" not in data:
            raise ApiError("Invalid file commit response format.", 500)
        logger.info("Committed %s to %s (%s)", file_path, branch_name, method)
        return data

    def _create_merge_request(
        self,
        source_branch: str,
        target_branch: str,
        title: str,
        description: str,
    ) -> Dict[str, Any]:
        data = self._request(
            "POST",
            f"{self._project_endpoint()}/merge_requests",
            body={
                "source_branch": source_branch,
                "target_branch": target_branch,
                "title": title,
                "description": description,
                "remove_source_branch": True,
            },
        )
        if not isinstance(data, dict) or not isinstance(data.get("web_url"), str):
            raise ApiError("Invalid merge request creation response format.", 500)
        logger.info("Opened merge request %s", data["web_url"])
        return data

    def _file_exists(self, endpoint: str, branch_name: str) -> bool:
        try:
            self._request("GET", endpoint, query={"ref": branch_name})
        except ApiError as exc:
            if exc.not_found:
                return False
            raise
        return True

    def _project_endpoint(self) -> str:
        if not self.settings.project_id:
            raise ApiError("GitLab project id is not configured.", 400)
        return f"/projects/{quote(self.settings.project_id, safe='')}"

    def _file_endpoint(self, file_path: str) -> str:
        if not file_path:
            raise ApiError("GitLab file path is not configured.", 400)
        return f"{self._project_endpoint()}/repository/files/{quote(file_path, safe='')}"

    def _require_token(self) -> str:
        token = self.token_store.get_token()
        if not token:
            raise AuthError("GitLab token not found. Set one with '/cloud token set <token>'.")
        return token

    def _request(
        self,
        method: str,
        path: str,
        query: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        token = self._require_token()
        url = f"{self.settings.domain}{path}"
        if query:
            url = f"{url}?{urlencode(query)}"

        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
            "User-Agent": USER_AGENT,
        }
        data = None
        if body is not None:
            data = json.dumps(body).encode("utf-8")
            headers["Content-Type"] = "application/json"

        req = Request(url, data=data, headers=headers, method=method)
        logger.debug("%s %s", method, url)

        try:
            with self._opener(req, timeout=self.settings.timeout) as resp:
                body_bytes = resp.read()
        except HTTPError as e:
            raise _error_from_response(e) from e
        except URLError as e:
            raise NetworkError(f"Connection error: {e.reason}") from e
        except OSError as e:
            raise NetworkError(f"Connection error: {e}") from e

        try:
            raw = body_bytes.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ApiError(f"GitLab returned a response that is not UTF-8: {e}", 500) from e

        if not raw.strip():
            return {}
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ApiError(f"GitLab returned a non-JSON response: {e}", 500, raw) from e


def _error_from_response(error: HTTPError) -> Exception:
    try:
        body = error.read().decode("utf-8", errors="replace")
    except (OSError, AttributeError):
        body = ""
    status = error.code

    if status == 401:
        return AuthError("GitLab API error: 401 Unauthorized. Check your personal access token.")
    if status == 403:
        if "Rate limit exceeded" in body:
            message = f"GitLab API rate limit exceeded: {body}"
        else:
            message = (
                "GitLab API error: 403 Forbidden. Check token permissions or project access. "
                f"Details: {body}"
            )
    elif status == 404:
        message = (
            "GitLab API error: 404 Not Found. Check project id, file path and branch. "
            f"Details: {body}"
        )
    else:
        message = f"GitLab API error: {status} {error.reason}. Details: {body}"
    return ApiError(message, status, body)


__all__ = ["GitlabTransport", "USER_AGENT"]
