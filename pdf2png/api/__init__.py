from . import convert

routers = [
    convert.router,
]

__all__ = [
    "routers",
]
