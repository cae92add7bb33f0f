# PDF module
from jurissign.pdf.certify import (
    CertificationInput,
    CertificationPipeline,
    CertifiedArtifact,
    Placement,
)
from jurissign.pdf.geometry import (
    AbsoluteRect,
    fallback_rect,
    to_absolute_rect,
    validate_field,
    validate_fields,
)
from jurissign.pdf.images import (
    decode_data_url,
    is_decodable,
    normalize_image,
    sniff_image_type,
    strip_white_background,
)

__all__ = [
    "CertificationInput",
    "CertificationPipeline",
    "CertifiedArtifact",
    "Placement",
    "AbsoluteRect",
    "fallback_rect",
    "to_absolute_rect",
    "validate_field",
    "validate_fields",
    "decode_data_url",
    "is_decodable",
    "normalize_image",
    "sniff_image_type",
    "strip_white_background",
]
