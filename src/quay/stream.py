"""
Backpressured row streaming.

A `RowSource` pushes rows through callbacks and can be paused. The
`stream_query` generator turns that into a pull based sequence by keeping
exactly one unresolved future per row: the source is paused as soon as a
row is delivered and resumed only when the consumer asks for the next one.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Dict, Optional

from asyncmy.cursors import SSDictCursor

from quay.base.interface import BaseInterface
from quay.sql.mysql.executor import Params

logger = logging.getLogger(__name__)

Row = Dict[str, Any]
_END = object()


class RowSource(ABC):
    """Event style row producer with manual flow control"""

    @abstractmethod
    def start(
        self,
        on_row: Callable[[Row], None],
        on_error: Callable[[BaseException], None],
        on_end: Callable[[], None],
    ) -> None: ...

    @abstractmethod
    def pause(self) -> None: ...

    @abstractmethod
    def resume(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...


class CursorRowSource(RowSource):
    """Rows read one at a time from an unbuffered server side cursor

    Nothing is read from the socket while paused, so at most one row is
    held in memory regardless of the size of the result set.
    """

    def __init__(
        self, connection: Any, query: str, params: Params = None
    ) -> None:
        self._connection = connection
        self._query = query
        self._params = params
        self._flowing = asyncio.Event()
        self._task: Optional[asyncio.Task] = None

    def start(self, on_row, on_error, on_end) -> None:
        self._flowing.set()
        self._task = asyncio.get_running_loop().create_task(
            self._pump(on_row, on_error, on_end)
        )

    def pause(self) -> None:
        self._flowing.clear()

    def resume(self) -> None:
        self._flowing.set()

    async def close(self) -> None:
        if self._task is None or self._task.done():
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _pump(self, on_row, on_error, on_end) -> None:
        try:
            cursor = self._connection.cursor(cursor=SSDictCursor)
            await cursor.execute(self._query, self._params)
            while True:
                await self._flowing.wait()
                row = await cursor.fetchone()
                if row is None:
                    break
                on_row(row)
            await cursor.close()
        except Exception as e:
            on_error(e)
        else:
            on_end()


async def stream_query(
    pool: BaseInterface,
    query: str,
    params: Params = None,
    source_factory: Callable[..., RowSource] = CursorRowSource,
) -> AsyncIterator[Row]:
    """Lazily iterate the rows of `query`

    The sequence is forward only and cannot be restarted. When it is
    exhausted the connection goes back to the pool. If iteration stops
    for any other reason (an error, or the consumer closing the generator
    early) the connection is destroyed, since a half read result leaves
    the session unusable.

    Stopping early should close the generator explicitly so that the
    connection is disposed of right away:

    ```python
    async with aclosing(stream_query(pool, "SELECT * FROM t")) as rows:
        async for row in rows:
            ...
    ```

    Args:
        pool (BaseInterface): Pool to lease the connection from
        query (str): SQL to stream
        params (Union[Sequence, Mapping], optional): Values to bind

    Yields:
        Dict[str, Any]: One row at a time, in source order

    Raises:
        Exception: Driver and network errors, unwrapped
    """
    connection = await pool.acquire()
    loop = asyncio.get_running_loop()
    source: Optional[RowSource] = None
    signal: asyncio.Future = loop.create_future()
    aborted = True

    def on_row(row: Row) -> None:
        source.pause()
        if not signal.done():
            signal.set_result(row)

    def on_error(error: BaseException) -> None:
        if not signal.done():
            signal.set_exception(error)

    def on_end() -> None:
        nonlocal aborted
        aborted = False
        if not signal.done():
            signal.set_result(_END)

    try:
        source = source_factory(connection, query, params)
        source.start(on_row, on_error, on_end)
        while True:
            row = await signal
            if row is _END:
                break
            yield row
            signal = loop.create_future()
            source.resume()
    finally:
        if aborted:
            logger.debug("Row stream stopped before the end of the result")
            if source is not None:
                await source.close()
            await _destroy(pool, connection)
        else:
            await _release(pool, connection)


async def _release(pool: BaseInterface, connection: Any) -> None:
    try:
        await pool.release(connection)
    except Exception:
        logger.error(
            "Releasing connection failed, destroying connection",
            exc_info=True,
        )
        await _destroy(pool, connection)


async def _destroy(pool: BaseInterface, connection: Any) -> None:
    try:
        await pool.destroy(connection)
    except Exception:
        logger.error("Destroying connection failed", exc_info=True)
