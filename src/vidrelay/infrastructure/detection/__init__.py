from vidrelay.infrastructure.detection.source_detector import (
    detect_source,
    extract_drive_file_id,
)

__all__ = ["detect_source", "extract_drive_file_id"]
