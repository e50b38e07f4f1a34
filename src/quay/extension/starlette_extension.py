from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from starlette.applications import Starlette

from quay.exception import QuayError
from quay.quay import Quay


class StarletteQuayExtension:
    def __init__(
        self,
        *,
        quay: Optional[Quay] = None,
        app: Optional[Starlette] = None,
        **quay_kwargs: Any,
    ):
        if quay is not None and quay_kwargs:
            raise QuayError("Conflict with quay instance and quay settings")
        self.quay = quay or Quay(**quay_kwargs)
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Starlette) -> None:
        app.router.lifespan_context = self.lifespan

    @asynccontextmanager
    async def lifespan(self, app: Starlette) -> AsyncIterator[None]:
        await self.quay.start()
        app.state.quay = self.quay
        try:
            yield
        finally:
            await self.quay.stop()
