from .interstitial_parser import InterstitialForm, InterstitialParserPort
from .playback_backend import PlaybackBackendPort
from .stream_forwarder import StreamForwarderPort
from .stream_resolver import StreamResolverPort, StreamResolverRegistryPort

__all__ = [
    "InterstitialForm",
    "InterstitialParserPort",
    "PlaybackBackendPort",
    "StreamForwarderPort",
    "StreamResolverPort",
    "StreamResolverRegistryPort",
]
