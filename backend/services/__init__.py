"""Backend services."""

from services.assembler import (
    DOCUMENT_REGISTRY,
    DocumentArtifact,
    generate_document,
    prepare_payload,
    register_document,
    render_payload,
)

__all__ = [
    "DOCUMENT_REGISTRY",
    "DocumentArtifact",
    "generate_document",
    "prepare_payload",
    "register_document",
    "render_payload",
]
