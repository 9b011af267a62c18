from .media import (
    DEFAULT_RANGE,
    DRIVE_ID_RE,
    InputError,
    Provider,
    ProviderUnsupported,
    ResolutionApproach,
    ResolutionError,
    ResolutionFailure,
    ResolvedStream,
    SourceReference,
    UpstreamRateLimited,
    UpstreamUnavailable,
    extract_drive_id,
)

__all__ = [
    "DEFAULT_RANGE",
    "DRIVE_ID_RE",
    "InputError",
    "Provider",
    "ProviderUnsupported",
    "ResolutionApproach",
    "ResolutionError",
    "ResolutionFailure",
    "ResolvedStream",
    "SourceReference",
    "UpstreamRateLimited",
    "UpstreamUnavailable",
    "extract_drive_id",
]
