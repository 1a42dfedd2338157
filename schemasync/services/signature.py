"""Inbound push validation: signatures, secret tokens, refs and repository identity.

A repository binding that fails any check is skipped for the current push.
Mismatches are never errors; they are only logged at debug level so the
response does not reveal which repositories are registered.
"""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Callable, Sequence

import structlog

from schemasync.errors import RequestError, ValidationError
from schemasync.schemas.bindings import RepositoryBinding

logger = structlog.get_logger()

SIGNATURE_PREFIX = "sha256="
BRANCH_REF_PREFIX = "refs/heads/"


def validate_github_signature(signature: str, secret: str, body: bytes) -> bool:
    """Check an ``X-Hub-Signature-256`` header against the raw request body.

    Computes the HMAC-SHA256 hex digest of ``body`` keyed with ``secret`` and
    compares it to the header value (``sha256=`` prefix stripped) in constant
    time.

    Raises:
        ValidationError: If the digest itself cannot be computed.
    """
    provided = signature.removeprefix(SIGNATURE_PREFIX)
    try:
        expected = hmac.new(
            secret.encode("utf-8"),
            msg=body,
            digestmod=hashlib.sha256,
        ).hexdigest()
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValidationError(f"compute webhook signature: {exc}") from exc
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def validate_gitlab_token(token: str, secret: str) -> bool:
    """Check an ``X-Gitlab-Token`` header against the stored secret."""
    return hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8"))


def parse_branch_from_ref(ref: str) -> str:
    """Return the branch name of a ``refs/heads/<branch>`` ref.

    Raises:
        RequestError: If ``ref`` is not a branch ref or names no branch.
    """
    if not ref.startswith(BRANCH_REF_PREFIX) or len(ref) == len(BRANCH_REF_PREFIX):
        logger.debug("unexpected_ref", ref=ref, expected_prefix=BRANCH_REF_PREFIX)
        msg = f"unexpected ref name {ref!r} without prefix {BRANCH_REF_PREFIX!r}"
        raise RequestError(msg)
    return ref[len(BRANCH_REF_PREFIX):]


def filter_bindings(
    bindings: Sequence[RepositoryBinding],
    *,
    branch: str,
    external_id: str,
    authenticate: Callable[[RepositoryBinding], bool],
) -> list[RepositoryBinding]:
    """Return the bindings this push is addressed to.

    Each binding is checked independently: branch filter, configured VCS,
    the provider specific ``authenticate`` callback, then external id. A
    ``ValidationError`` from ``authenticate`` skips only that binding.
    """
    eligible: list[RepositoryBinding] = []
    for binding in bindings:
        if binding.branch_filter != branch:
            logger.debug(
                "skipping_repo_branch_mismatch",
                repo_id=binding.id,
                branch=branch,
                branch_filter=binding.branch_filter,
            )
            continue
        if binding.vcs is None:
            logger.debug("skipping_repo_missing_vcs", repo_id=binding.id)
            continue
        try:
            authenticated = authenticate(binding)
        except ValidationError:
            logger.exception("skipping_repo_signature_error", repo_id=binding.id)
            continue
        if not authenticated:
            logger.debug("skipping_repo_unauthenticated", repo_id=binding.id)
            continue
        if binding.external_id != external_id:
            logger.debug(
                "skipping_repo_external_id_mismatch",
                repo_id=binding.id,
                push_external_id=external_id,
                repo_external_id=binding.external_id,
            )
            continue
        eligible.append(binding)
    return eligible
