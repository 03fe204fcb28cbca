from coursefeed.health.router import router


__all__ = ["router"]
