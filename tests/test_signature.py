"""Tests for webhook signature checks, ref parsing and repository filtering."""

import pytest

from schemasync.errors import RequestError, ValidationError
from schemasync.services.signature import (
    filter_bindings,
    parse_branch_from_ref,
    validate_github_signature,
    validate_gitlab_token,
)
from factories import WEBHOOK_SECRET, make_binding, sign

BODY = b'{"ref": "refs/heads/main"}'


# ---------------------------------------------------------------------------
# GitHub HMAC signatures
# ---------------------------------------------------------------------------


def test_github_signature_valid() -> None:
    assert validate_github_signature(sign(BODY), WEBHOOK_SECRET, BODY) is True


def test_github_signature_wrong_secret() -> None:
    assert validate_github_signature(sign(BODY, "other"), WEBHOOK_SECRET, BODY) is False


def test_github_signature_single_bit_flip_in_body() -> None:
    """Changing one bit of the body must invalidate the signature."""
    signature = sign(BODY)
    tampered = bytes([BODY[0] ^ 0x01]) + BODY[1:]
    assert validate_github_signature(signature, WEBHOOK_SECRET, tampered) is False


def test_github_signature_single_char_change_in_digest() -> None:
    signature = sign(BODY)
    last = "0" if signature[-1] != "0" else "1"
    assert validate_github_signature(signature[:-1] + last, WEBHOOK_SECRET, BODY) is False


def test_github_signature_missing_header() -> None:
    assert validate_github_signature("", WEBHOOK_SECRET, BODY) is False


def test_github_signature_without_prefix_still_compared() -> None:
    """The ``sha256=`` prefix is optional; the bare digest is accepted."""
    bare = sign(BODY).removeprefix("sha256=")
    assert validate_github_signature(bare, WEBHOOK_SECRET, BODY) is True


def test_github_signature_uncomputable_raises_validation_error() -> None:
    with pytest.raises(ValidationError):
        validate_github_signature(sign(BODY), None, BODY)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# GitLab secret tokens
# ---------------------------------------------------------------------------


def test_gitlab_token_exact_match() -> None:
    assert validate_gitlab_token("s3cret", "s3cret") is True


@pytest.mark.parametrize("token", ["", "s3cre", "s3cret ", "S3CRET"])
def test_gitlab_token_mismatch(token: str) -> None:
    assert validate_gitlab_token(token, "s3cret") is False


# ---------------------------------------------------------------------------
# Refs
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("ref", "branch"),
    [
        ("refs/heads/main", "main"),
        ("refs/heads/feature/x", "feature/x"),
    ],
)
def test_parse_branch_from_ref(ref: str, branch: str) -> None:
    assert parse_branch_from_ref(ref) == branch


@pytest.mark.parametrize("ref", ["refs/tags/v1", "main", "refs/heads/", ""])
def test_parse_branch_from_ref_rejects_non_branch_refs(ref: str) -> None:
    with pytest.raises(RequestError):
        parse_branch_from_ref(ref)


# ---------------------------------------------------------------------------
# Binding filtering
# ---------------------------------------------------------------------------


def _accept(binding) -> bool:
    return True


def test_filter_bindings_keeps_matching_binding() -> None:
    binding = make_binding()
    assert filter_bindings([binding], branch="main", external_id="acme/orders", authenticate=_accept) == [
        binding
    ]


def test_filter_bindings_skips_branch_mismatch() -> None:
    binding = make_binding(branch_filter="release")
    assert filter_bindings([binding], branch="main", external_id="acme/orders", authenticate=_accept) == []


def test_filter_bindings_skips_missing_vcs() -> None:
    binding = make_binding(with_vcs=False)
    assert filter_bindings([binding], branch="main", external_id="acme/orders", authenticate=_accept) == []


def test_filter_bindings_skips_external_id_mismatch() -> None:
    binding = make_binding(external_id="acme/billing")
    assert filter_bindings([binding], branch="main", external_id="acme/orders", authenticate=_accept) == []


def test_filter_bindings_authenticates_each_binding_independently() -> None:
    """A bad secret on one binding does not affect another binding on the same endpoint."""
    good = make_binding(id=1, secret=WEBHOOK_SECRET)
    bad = make_binding(id=2, secret="other")

    eligible = filter_bindings(
        [good, bad],
        branch="main",
        external_id="acme/orders",
        authenticate=lambda binding: validate_github_signature(
            sign(BODY), binding.webhook_secret_token, BODY
        ),
    )

    assert [binding.id for binding in eligible] == [1]


def test_filter_bindings_validation_error_skips_only_that_binding() -> None:
    first = make_binding(id=1)
    second = make_binding(id=2)

    def authenticate(binding) -> bool:
        if binding.id == 1:
            raise ValidationError("cannot compute")
        return True

    eligible = filter_bindings(
        [first, second], branch="main", external_id="acme/orders", authenticate=authenticate
    )

    assert [binding.id for binding in eligible] == [2]


def test_github_signature_single_bit_flip_in_key() -> None:
    flipped_key = chr(ord(WEBHOOK_SECRET[0]) ^ 0x01) + WEBHOOK_SECRET[1:]
    assert validate_github_signature(sign(BODY), flipped_key, BODY) is False
