from vidrelay.infrastructure.resolvers.direct import DirectResolver
from vidrelay.infrastructure.resolvers.gdrive import GoogleDriveResolver
from vidrelay.infrastructure.resolvers.interstitial import SoupInterstitialParser
from vidrelay.infrastructure.resolvers.registry import StreamResolverRegistry
from vidrelay.infrastructure.resolvers.vidmoly import (
    VidmolyResolver,
    select_best_candidate,
)

__all__ = [
    "DirectResolver",
    "GoogleDriveResolver",
    "SoupInterstitialParser",
    "StreamResolverRegistry",
    "VidmolyResolver",
    "select_best_candidate",
]
