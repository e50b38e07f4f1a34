"""
Transaction execution for a single flat transaction per unit of work.

The protocol (acquire, BEGIN, work, COMMIT, release, with ROLLBACK or
destroy on failure) lives in one coroutine. The await style and the
callback style are thin adapters over it, so both report identical
protocol state for identical outcomes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from quay.base.interface import BaseInterface
from quay.sql.mysql.executor import MysqlExecutor, Params

from .interfaces import TransactionError, TransactionState

logger = logging.getLogger(__name__)

Done = Callable[..., None]


@dataclass
class TransactionContext:
    """What a unit of work receives: the raw connection and an executor
    bound to it"""

    connection: Any
    executor: MysqlExecutor = field(init=False)

    def __post_init__(self) -> None:
        self.executor = MysqlExecutor(self.connection)

    async def query(self, query: str, params: Params = None):
        return await self.executor.run_sql(query, params)


class TransactionExecutor:
    """Runs units of work inside BEGIN/COMMIT on connections leased from
    `pool`.

    Nested transactions are not supported.
    """

    def __init__(self, pool: BaseInterface) -> None:
        self.pool = pool

    async def run_transaction_async(
        self, work: Callable[[TransactionContext], Awaitable[Any]]
    ) -> None:
        """Run `work` in a transaction

        Example:

        ```python
        async def transfer(ctx):
            await ctx.query("UPDATE account SET balance = balance - 10 WHERE id = 1")
            await ctx.query("UPDATE account SET balance = balance + 10 WHERE id = 2")

        await executor.run_transaction_async(transfer)
        ```

        Args:
            work: Coroutine function receiving a `TransactionContext`

        Raises:
            TransactionError: On any failure, wrapping the original error
        """  # noqa
        await self._run(work)

    def run_transaction(
        self,
        work: Callable[[TransactionContext, Done], Any],
        callback: Callable[[Optional[BaseException]], Any],
    ) -> asyncio.Task:
        """Run `work` in a transaction, reporting through `callback`

        `work` is called as `work(ctx, done)` and must call `done()` on
        success or `done(error)` on failure. Calls after the first are
        ignored. Raising from `work` counts as a failure.

        `callback` is called once with `None` on success or with a
        `TransactionError`. If the returned task is cancelled, it is called
        with the `asyncio.CancelledError` instead. Must be called with a
        running event loop.

        Returns:
            asyncio.Task: The task driving the transaction
        """
        loop = asyncio.get_running_loop()

        async def unit(context: TransactionContext) -> None:
            finished = loop.create_future()

            def done(error: Optional[BaseException] = None) -> None:
                if finished.done():
                    return
                if error is None:
                    finished.set_result(None)
                else:
                    finished.set_exception(error)

            work(context, done)
            await finished

        def report(task: asyncio.Task) -> None:
            if task.cancelled():
                try:
                    task.result()
                except asyncio.CancelledError as e:
                    callback(e)
                return
            callback(task.exception())

        task = loop.create_task(self._run(unit))
        task.add_done_callback(report)
        return task

    async def _run(
        self, work: Callable[[TransactionContext], Awaitable[Any]]
    ) -> None:
        started = committed = reverted = False

        try:
            connection = await self.pool.acquire()
        except Exception as e:
            raise TransactionError(e, TransactionState()) from e

        try:
            await connection.begin()
            started = True
            logger.debug("Transaction started")

            await work(TransactionContext(connection))

            await connection.commit()
            committed = True
            logger.debug("Transaction committed")
        except asyncio.CancelledError:
            await self._destroy(connection)
            raise
        except Exception as e:
            if started:
                reverted = await self._rollback(connection)
            else:
                await self._release(connection)
            raise TransactionError(
                e, TransactionState(started, committed, reverted)
            ) from e

        await self._release(connection)

    async def _rollback(self, connection: Any) -> bool:
        try:
            await connection.rollback()
        except asyncio.CancelledError:
            await self._destroy(connection)
            raise
        except Exception:
            logger.error(
                "Transaction rollback failed, destroying connection",
                exc_info=True,
            )
            await self._destroy(connection)
            return False
        logger.debug("Transaction rolled back")
        await self._release(connection)
        return True

    async def _release(self, connection: Any) -> None:
        try:
            await self.pool.release(connection)
        except asyncio.CancelledError:
            await self._destroy(connection)
            raise
        except Exception:
            logger.error(
                "Releasing connection failed, destroying connection",
                exc_info=True,
            )
            await self._destroy(connection)

    async def _destroy(self, connection: Any) -> None:
        try:
            await self.pool.destroy(connection)
        except Exception:
            logger.error("Destroying connection failed", exc_info=True)
