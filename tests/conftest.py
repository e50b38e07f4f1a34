from collections import deque
from typing import Any, Deque, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from quay.base.interface import BaseInterface
from quay.transaction import TransactionExecutor


class FakeDatabase:
    """Committed table contents shared by every fake connection"""

    def __init__(self):
        self.rows: List[Dict[str, Any]] = []
        self.faults: Dict[str, BaseException] = {}
        self.fetches = 0
        self.fail_on_fetch: Optional[int] = None

    def fault(self, name: str):
        error = self.faults.get(name)
        if error is not None:
            raise error

    def seed(self, count: int):
        self.rows = [{"id": i, "value": f"row-{i}"} for i in range(count)]


class CursorMock:
    def __init__(self, connection):
        self.connection = connection
        self.database = connection.database
        self.result: Deque[Dict[str, Any]] = deque()
        self.rowcount = 0
        self.closed = False

    async def __aenter__(self, *args, **kwargs):
        return self

    async def __aexit__(self, *args, **kwargs):
        await self.close()

    async def execute(self, query, params=None):
        self.database.fault("execute")
        statement = query.strip().upper()
        if statement.startswith("INSERT"):
            rows = self.connection.visible_rows()
            rows.append({"id": len(rows), "value": params[0]})
            self.result = deque()
            self.rowcount = 1
        elif statement.startswith("SELECT"):
            self.result = deque(self.connection.visible_rows())
            self.rowcount = len(self.result)
        else:
            raise ValueError(f"Unsupported statement: {query}")

    async def fetchall(self):
        rows, self.result = tuple(self.result), deque()
        return rows

    async def fetchone(self):
        self.database.fetches += 1
        if self.database.fetches == self.database.fail_on_fetch:
            raise ConnectionResetError("lost connection during query")
        if not self.result:
            return None
        return self.result.popleft()

    async def close(self):
        self.closed = True


class ConnectionMock:
    def __init__(self, database: FakeDatabase):
        self.database = database
        self.staged: Optional[List[Dict[str, Any]]] = None
        self.cursors: List[CursorMock] = []
        self.begin = AsyncMock(side_effect=self._begin)
        self.commit = AsyncMock(side_effect=self._commit)
        self.rollback = AsyncMock(side_effect=self._rollback)
        self.close = MagicMock()

    def visible_rows(self):
        return self.database.rows if self.staged is None else self.staged

    def cursor(self, cursor=None):
        created = CursorMock(self)
        self.cursors.append(created)
        return created

    async def _begin(self):
        self.database.fault("begin")
        self.staged = [dict(row) for row in self.database.rows]

    async def _commit(self):
        self.database.fault("commit")
        self.database.rows = self.staged
        self.staged = None

    async def _rollback(self):
        self.database.fault("rollback")
        self.staged = None


class FakePool(BaseInterface):
    scheme = "fake"

    def __init__(self, database: FakeDatabase, **kwargs):
        self.database = database
        self.connections: List[ConnectionMock] = []
        self.released: List[ConnectionMock] = []
        self.destroyed: List[ConnectionMock] = []
        self.opened = False
        self.closed = False
        super().__init__(**kwargs)

    def _setup_pool(self): ...

    async def open(self):
        self.opened = True

    async def close(self):
        self.closed = True

    async def acquire(self):
        self.database.fault("acquire")
        conn = ConnectionMock(self.database)
        self.connections.append(conn)
        return conn

    async def release(self, connection):
        self.database.fault("release")
        self.released.append(connection)

    async def destroy(self, connection):
        self.destroyed.append(connection)
        self.database.fault("destroy")

    @property
    def connection_mock(self) -> ConnectionMock:
        (conn,) = self.connections
        return conn


@pytest.fixture
def database():
    return FakeDatabase()


@pytest.fixture
def pool(database):
    return FakePool(database)


@pytest.fixture
def executor(pool):
    return TransactionExecutor(pool)
