from .resolve_playback import ResolvePlaybackUseCase
from .stream_media import StreamMediaUseCase

__all__ = ["ResolvePlaybackUseCase", "StreamMediaUseCase"]
