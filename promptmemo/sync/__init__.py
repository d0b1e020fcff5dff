"""Cloud synchronization for PromptMemo."""

from __future__ import annotations

from .codec import (
    PromptDocument,
    decode,
    document_to_prompts,
    encode,
    parse,
    serialize,
    to_payload,
)
from .errors import ApiError, AuthError, NetworkError, PromptMemoError, ValidationError
from .identity import (
    filter_out_duplicates,
    identity_key,
    is_duplicate_prompt,
    is_same_prompt,
    overlay_prompts,
    remove_duplicates,
)
from .service import CloudResult, CloudService
from .transport import GitlabTransport

__all__ = [
    # Codec
    "PromptDocument",
    "decode",
    "document_to_prompts",
    "encode",
    "parse",
    "serialize",
    "to_payload",
    # Errors
    "ApiError",
    "AuthError",
    "NetworkError",
    "PromptMemoError",
    "ValidationError",
    # Identity
    "filter_out_duplicates",
    "identity_key",
    "is_duplicate_prompt",
    "is_same_prompt",
    "overlay_prompts",
    "remove_duplicates",
    # Service
    "CloudResult",
    "CloudService",
    "GitlabTransport",
]
