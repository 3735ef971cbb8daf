"""FastAPI dependencies shared by the routers."""

from fastapi import Request

from deferlink.core.deferred import DeferredLinker


def get_linker(request: Request) -> DeferredLinker:
    return request.app.state.linker
