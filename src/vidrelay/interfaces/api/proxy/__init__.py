from vidrelay.interfaces.api.proxy.router import router

__all__ = ["router"]
