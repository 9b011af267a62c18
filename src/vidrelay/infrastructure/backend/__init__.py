from vidrelay.infrastructure.backend.playback_backend import HttpxPlaybackBackend

__all__ = ["HttpxPlaybackBackend"]
