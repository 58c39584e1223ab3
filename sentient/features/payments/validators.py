"""Proof-of-payment file checks applied before an upload is attempted."""

from typing import BinaryIO, Optional

from sentient.core.config import settings
from sentient.core.errors import ValidationError
from sentient.models.payment import ProofUpload

ALLOWED_PROOF_TYPES = frozenset({
    "image/jpeg",
    "image/png",
    "image/gif",
    "image/webp",
    "application/pdf",
})

_SUFFIX_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "pdf": "application/pdf",
}

_GENERIC_TYPES = {"", "application/octet-stream"}


def resolve_content_type(filename: str, declared: Optional[str]) -> Optional[str]:
    """Declared MIME type, or one inferred from the filename suffix when the client sent none."""
    if declared:
        mime = declared.split(";", 1)[0].strip().lower()
        if mime not in _GENERIC_TYPES:
            return mime
    if "." not in filename:
        return None
    return _SUFFIX_TYPES.get(filename.rsplit(".", 1)[-1].lower())


def validate_proof_file(proof: ProofUpload, max_bytes: Optional[int] = None) -> str:
    """
    Reject proofs over the size limit or outside the allowed image/PDF types.

    Returns the resolved content type. The object store does not repeat
    these checks.

    Raises:
        ValidationError: proof_too_large / proof_type_not_allowed
    """
    limit = max_bytes if max_bytes is not None else settings.MAX_PROOF_BYTES
    if proof.size > limit:
        raise ValidationError(
            f"Please select a file smaller than {limit // (1024 * 1024)}MB.",
            code="proof_too_large",
        )

    content_type = resolve_content_type(proof.filename, proof.content_type)
    if content_type not in ALLOWED_PROOF_TYPES:
        raise ValidationError(
            "Payment proof must be a JPEG, PNG, GIF, WebP image or a PDF.",
            code="proof_type_not_allowed",
        )
    return content_type


def read_proof_bytes(stream: BinaryIO, max_bytes: Optional[int] = None) -> bytes:
    """Read at most one byte past the limit, enough for validate_proof_file to reject it."""
    limit = max_bytes if max_bytes is not None else settings.MAX_PROOF_BYTES
    return stream.read(limit + 1)
