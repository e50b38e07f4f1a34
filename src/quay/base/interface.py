from __future__ import annotations

from abc import ABC, abstractmethod
from collections import namedtuple
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional
from urllib.parse import urlparse

from quay.exception import QuayError

UrlMapping = namedtuple("UrlMapping", ("key", "cast"))


URLPARSE_MAPPING = {
    "hostname": UrlMapping("_host", str),
    "username": UrlMapping("_user", str),
    "password": UrlMapping("_password", str),
    "port": UrlMapping("_port", int),
    "path": UrlMapping("_db", lambda value: value.replace("/", "")),
}


class BaseInterface(ABC):
    scheme = "dummy"
    default_port: Optional[int] = None

    @abstractmethod
    def _setup_pool(self): ...

    @abstractmethod
    async def open(self): ...

    @abstractmethod
    async def close(self): ...

    @abstractmethod
    async def acquire(self) -> Any: ...

    @abstractmethod
    async def release(self, connection: Any) -> None: ...

    @abstractmethod
    async def destroy(self, connection: Any) -> None: ...

    def __init__(
        self,
        dsn: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        db: Optional[str] = None,
        label: Optional[str] = None,
    ) -> None:
        """DB class initialization.

        Args:
            dsn (str, optional): DB data source name
            host (str, optional): DB address URL or IP
            port (int, optional): DB port
            user (str, optional): DB user
            password (str, optional): DB password
            db (str, optional): DB name
            label (str, optional): Name used when reporting pool level
                errors. Defaults to `"generic"`
        """

        if dsn and host:
            raise QuayError("Cannot connect to DB using host and dsn")

        if not dsn:
            if port and (
                not isinstance(port, int) or port not in range(0, 65536)
            ):
                raise QuayError("port: must be an integer between 0 and 65535")

            if host and (not isinstance(host, str) or not len(host) > 0):
                raise QuayError(
                    "host: must be a string at least 1 character long"
                )

        if password is not None and (
            not isinstance(password, str) or not len(password) > 0
        ):
            raise QuayError(
                "password: must be a string at least 1 character long"
            )

        self._dsn = dsn
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._db = db
        self._label = label or "generic"
        self._full_dsn: Optional[str] = None

        self._populate_connection_args()
        self._populate_dsn()
        self._setup_pool()

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self.dsn}>"

    def _populate_connection_args(self):
        dsn = self.dsn or ""
        defaults = {
            "port": self.default_port,
            "hostname": "localhost",
            "path": "/",
        }
        parts = urlparse(dsn) if dsn else None
        for key, mapping in URLPARSE_MAPPING.items():
            if getattr(self, mapping.key):
                continue
            value = getattr(parts, key, None) if parts else None
            if value is None:
                value = defaults.get(key)
            if value is not None:
                setattr(self, mapping.key, mapping.cast(value))
        if not self._db:
            self._db = None

    def _populate_dsn(self):
        self._dsn = (
            (
                f"{self.scheme}://{self.user}:...@"
                f"{self.host}:{self.port}/{self.db or ''}"
            )
            if self.password
            else (
                f"{self.scheme}://{self.user}@"
                f"{self.host}:{self.port}/{self.db or ''}"
            )
        )
        self._full_dsn = (
            (
                f"{self.scheme}://{self.user}:{self.password}@"
                f"{self.host}:{self.port}/{self.db or ''}"
            )
            if self.password
            else self.dsn
        )

    @property
    def dsn(self):
        return self._dsn

    @property
    def host(self):
        return self._host

    @property
    def port(self):
        return self._port

    @property
    def user(self):
        return self._user

    @property
    def password(self):
        return self._password

    @property
    def db(self):
        return self._db

    @property
    def full_dsn(self):
        return self._full_dsn

    @property
    def label(self):
        return self._label

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[Any]:
        """Lease a connection for the duration of the block

        The connection is released when the block exits cleanly. If the
        block raises, the state of the session is unknown and the
        connection is destroyed instead.

        Yields:
            A database connection
        """
        conn = await self.acquire()
        try:
            yield conn
        except BaseException:
            await self.destroy(conn)
            raise
        await self.release(conn)
