"""Cloud reconciliation: keeps a local cache of the shared prompt document.

The remote document is the source of truth. The cache is replaced wholesale by
``sync_all`` or partially by ``sync_selected``; ``push`` publishes through a
branch, commit and merge request and never writes to the cache.
"""

from __future__ import annotations

import logging
import re
import socket
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..configuration import GitlabSettings
from ..events import ChangeEmitter, SerialQueue, serialized
from ..models import Prompt
from ..storage import StateStore, TokenStore
from . import codec
from .errors import ApiError, AuthError, NetworkError, PromptMemoError, ValidationError
from .identity import filter_out_duplicates, identity_key, overlay_prompts
from .transport import GitlabTransport

logger = logging.getLogger("promptmemo.sync.service")

Clock = Callable[[], datetime]


@dataclass
class CloudResult:
    """Outcome of a cloud operation; errors never escape as exceptions."""

    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error: str = ""
    needs_auth: bool = False
    status: Optional[int] = None

    @classmethod
    def ok(cls, **data: Any) -> "CloudResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str, *, needs_auth: bool = False, status: Optional[int] = None) -> "CloudResult":
        return cls(success=False, error=error, needs_auth=needs_auth, status=status)

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}
        result: Dict[str, Any] = {"success": False, "error": self.error}
        if self.needs_auth:
            result["needs_auth"] = True
        return result


class CloudService:
    """Owns the cached cloud prompts and categories."""

    CLOUD_PROMPTS_KEY = "cloud_prompts"
    CLOUD_CATEGORIES_KEY = "cloud_categories"

    def __init__(
        self,
        state_store: StateStore,
        token_store: TokenStore,
        transport: GitlabTransport,
        settings: GitlabSettings,
        *,
        clock: Optional[Clock] = None,
        hostname: Optional[str] = None,
    ) -> None:
        self.state_store = state_store
        self.token_store = token_store
        self.transport = transport
        self.settings = settings
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._hostname = hostname

        self.on_prompts_changed = ChangeEmitter("cloud_prompts")
        self.on_categories_changed = ChangeEmitter("cloud_categories")

        self._queue = SerialQueue()
        self._prompts: List[Prompt] = []
        self._categories: List[str] = []
        self._initialized = False

    @serialized
    async def initialize(self) -> None:
        if self._initialized:
            return
        stored = self.state_store.get_value(self.CLOUD_PROMPTS_KEY, [])
        self._prompts = [replace(Prompt.from_dict(item), is_cloud=True) for item in stored]
        stored_categories = self.state_store.get_value(self.CLOUD_CATEGORIES_KEY, None)
        if stored_categories is None:
            stored_categories = list(dict.fromkeys(p.category_id for p in self._prompts))
        self._categories = [str(name) for name in stored_categories]
        self._initialized = True
        logger.debug(
            "Loaded %d cached cloud prompts in %d categories",
            len(self._prompts),
            len(self._categories),
        )

    def get_cloud_prompts(self) -> List[Prompt]:
        return [replace(prompt) for prompt in self._prompts]

    def get_cloud_categories(self) -> List[str]:
        return list(self._categories)

    def has_token(self) -> bool:
        return bool(self.token_store.get_token())

    def set_token(self, token: str) -> None:
        self.token_store.set_token(token)

    def clear_token(self) -> None:
        self.token_store.clear_token()

    async def fetch_and_parse(self) -> CloudResult:
        """Fetch and decode the remote document without touching the cache.

        On success ``data`` holds ``prompts`` (is_cloud unset) and
        ``categories`` in document order.
        """
        if not self.has_token():
            return CloudResult.fail(
                "GitLab token not found. Set one with '/cloud token set <token>'.",
                needs_auth=True,
                status=401,
            )

        try:
            file_data = await self.transport.get_file()
        except AuthError as exc:
            return CloudResult.fail(str(exc), needs_auth=True, status=401)
        except ApiError as exc:
            return CloudResult.fail(str(exc), status=exc.status)
        except NetworkError as exc:
            logger.warning("Fetching the prompt document failed: %s", exc)
            return CloudResult.fail(str(exc))
        except PromptMemoError as exc:
            logger.warning("Fetching the prompt document failed: %s", exc)
            return CloudResult.fail(str(exc), status=getattr(exc, "status", None))

        content = file_data.get("content")
        if not content:
            return CloudResult.fail("File content is empty or missing in GitLab response.")

        try:
            document = codec.decode(content)
        except ValidationError as exc:
            logger.warning("Remote prompt document is invalid: %s", exc)
            return CloudResult.fail(f"Invalid prompt data: {exc}")

        prompts = codec.document_to_prompts(document, now=self._now_ms())
        return CloudResult.ok(prompts=prompts, categories=document.categories)

    async def fetch_available_categories(self) -> CloudResult:
        result = await self.fetch_and_parse()
        if not result.success:
            return result
        return CloudResult.ok(categories=result.data["categories"])

    @serialized
    async def sync_all(self) -> CloudResult:
        """Replace the whole cache with the remote document."""
        result = await self.fetch_and_parse()
        if not result.success:
            return result

        self._prompts = [replace(prompt, is_cloud=True) for prompt in result.data["prompts"]]
        self._categories = list(result.data["categories"])
        self._save()
        self.on_prompts_changed.fire()
        self.on_categories_changed.fire()

        logger.info("Synced %d cloud prompts", len(self._prompts))
        return CloudResult.ok(synced_prompts=len(self._prompts))

    @serialized
    async def sync_selected(self, selected_categories: Sequence[str]) -> CloudResult:
        """Pull only the selected categories into the cache.

        Cached prompts that no longer exist anywhere in the remote document are
        evicted whatever their category. A cached prompt that is still present
        remotely is kept as-is; the freshly fetched copy does not replace it.
        """
        selected = list(dict.fromkeys(selected_categories))
        result = await self.fetch_and_parse()
        if not result.success:
            return result

        remote: List[Prompt] = result.data["prompts"]
        remote_keys = {identity_key(prompt) for prompt in remote}

        keep = [prompt for prompt in self._prompts if identity_key(prompt) in remote_keys]
        deleted_count = len(self._prompts) - len(keep)

        wanted = set(selected)
        incoming = [replace(prompt, is_cloud=True) for prompt in remote if prompt.category_id in wanted]
        new_unique = filter_out_duplicates(incoming, keep)

        self._prompts = keep + new_unique
        self._categories = self._categories + [name for name in selected if name not in self._categories]
        self._save()
        self.on_prompts_changed.fire()
        self.on_categories_changed.fire()

        synced_count = sum(1 for prompt in self._prompts if prompt.category_id in wanted)
        logger.info(
            "Synced categories %s: %d prompts, %d added, %d removed",
            ", ".join(selected),
            synced_count,
            len(new_unique),
            deleted_count,
        )
        return CloudResult.ok(
            synced_prompts=synced_count,
            added_prompts=len(new_unique),
            deleted_prompts=deleted_count,
        )

    @serialized
    async def remove_category(self, category_id: str) -> CloudResult:
        """Drop a category and its prompts from the cache only."""
        original_length = len(self._prompts)
        self._prompts = [prompt for prompt in self._prompts if prompt.category_id != category_id]
        removed_count = original_length - len(self._prompts)
        self._categories = [name for name in self._categories if name != category_id]

        if removed_count:
            self.state_store.set_value(self.CLOUD_PROMPTS_KEY, [p.to_dict() for p in self._prompts])
            self.on_prompts_changed.fire()
        self.state_store.set_value(self.CLOUD_CATEGORIES_KEY, list(self._categories))
        self.on_categories_changed.fire()

        logger.info("Removed cloud category %s (%d prompts)", category_id, removed_count)
        return CloudResult.ok(removed_prompts=removed_count)

    async def push(self, prompts: Sequence[Prompt], involved_category_ids: Sequence[str]) -> CloudResult:
        """Publish prompts to the remote document through a merge request.

        The pushed prompts are overlaid on the remote ones: a pushed prompt
        identical to a remote entry takes that entry's place, the others are
        appended in order. Counts in the commit message are informational.
        A failure after the branch exists leaves that branch behind.
        """
        if not prompts:
            return CloudResult.fail("No prompts selected for pushing.")

        fetch_result = await self.fetch_and_parse()
        if fetch_result.success:
            remote: List[Prompt] = fetch_result.data["prompts"]
        elif fetch_result.needs_auth:
            return fetch_result
        elif fetch_result.status == 404:
            logger.info("Remote prompt file not found; pushing into an empty document")
            remote = []
        else:
            return CloudResult.fail(
                f"Failed to fetch remote state: {fetch_result.error}",
                status=fetch_result.status,
            )

        named = [replace(prompt, alias=prompt.name) for prompt in prompts]
        unique = overlay_prompts(remote, named)
        new_count = len(unique) - len(remote)
        updated_count = len(prompts) - new_count
        payload = codec.to_payload(codec.encode(unique))

        branch_name = self._branch_name()
        file_path = self.settings.file_path
        step = f"create branch '{branch_name}'"
        try:
            await self.transport.create_branch(branch_name, self.settings.branch)

            step = f"commit {file_path} to '{branch_name}'"
            await self.transport.commit_file(
                branch_name,
                file_path,
                payload,
                f"Update prompts: added {new_count} new, updated {updated_count}.",
            )

            step = "open merge request"
            merge_request = await self.transport.create_merge_request(
                branch_name,
                self.settings.target_branch or self.settings.branch,
                self._merge_request_title(involved_category_ids),
                (
                    f"This merge request adds {new_count} new prompt(s) and updates "
                    f"{updated_count} existing prompt(s) from categories: "
                    f"{', '.join(involved_category_ids)}."
                ),
            )
        except AuthError as exc:
            return CloudResult.fail(str(exc), needs_auth=True, status=401)
        except PromptMemoError as exc:
            logger.error("Push failed while trying to %s: %s", step, exc)
            return CloudResult.fail(f"Failed to {step}: {exc}", status=getattr(exc, "status", None))
        except Exception as exc:
            logger.exception("Push failed while trying to %s", step)
            return CloudResult.fail(f"Failed to {step}: {exc}")

        logger.info(
            "Pushed %d prompts (%d new, %d updated) as %s",
            len(prompts),
            new_count,
            updated_count,
            merge_request["web_url"],
        )
        return CloudResult.ok(
            merge_request_url=merge_request["web_url"],
            pushed_prompts=len(prompts),
            new_prompts=new_count,
            updated_prompts=updated_count,
            branch=branch_name,
        )

    def _branch_name(self) -> str:
        stamp = self._clock().strftime("%Y-%m-%dT%H:%M:%S")
        return f"{self.settings.branch_prefix}_{re.sub(r'[:.-]', '_', stamp)}"

    def _merge_request_title(self, involved_category_ids: Sequence[str]) -> str:
        host = self._hostname if self._hostname is not None else socket.gethostname()
        if involved_category_ids:
            return f"Update prompts ({', '.join(involved_category_ids)}) from {host or 'local'}"
        return f"Update prompts from {host or 'local'}"

    def _now_ms(self) -> int:
        return int(time.time() * 1000)

    def _save(self) -> None:
        self.state_store.set_value(self.CLOUD_PROMPTS_KEY, [p.to_dict() for p in self._prompts])
        self.state_store.set_value(self.CLOUD_CATEGORIES_KEY, list(self._categories))


__all__ = ["CloudResult", "CloudService"]
