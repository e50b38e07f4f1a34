from __future__ import annotations

import asyncio
import logging
import re
from inspect import isawaitable
from typing import Any, Dict, Optional

from asyncmy import Connection, create_pool
from asyncmy.constants import FIELD_TYPE
from asyncmy.converters import conversions

from quay.base.interface import BaseInterface
from quay.exception import QuayError

logger = logging.getLogger(__name__)

DESTROY_TIMEOUT = 5.0
TIMEZONE_PATTERN = re.compile(
    r"SYSTEM|[+-](0\d|1[0-4]):[0-5]\d|[A-Za-z]+(/[A-Za-z0-9_+-]+)*"
)

NUMBER_FIELDS = (
    FIELD_TYPE.DECIMAL,
    FIELD_TYPE.NEWDECIMAL,
    FIELD_TYPE.LONGLONG,
)
DATE_FIELDS = (
    FIELD_TYPE.DATE,
    FIELD_TYPE.NEWDATE,
    FIELD_TYPE.DATETIME,
    FIELD_TYPE.TIMESTAMP,
    FIELD_TYPE.TIME,
)


def build_conversions(
    big_number_strings: bool = True, date_strings: bool = True
) -> Dict[Any, Any]:
    """Driver converter table with the requested fidelity modes applied.

    Values decoded with `str` are handed back exactly as the server sent
    them, so DECIMAL/BIGINT columns never pass through a float and
    temporal columns are never shifted into a host-local calendar object.
    """
    conv = dict(conversions)
    if big_number_strings:
        for field_type in NUMBER_FIELDS:
            conv[field_type] = str
    if date_strings:
        for field_type in DATE_FIELDS:
            conv[field_type] = str
    return conv


class MysqlPool(BaseInterface):
    """Interface for connecting to a MySQL database"""

    scheme = "mysql"
    default_port = 3306

    def __init__(
        self,
        dsn: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        db: Optional[str] = None,
        label: Optional[str] = None,
        *,
        connection_limit: int = 100,
        timezone: Optional[str] = "+00:00",
        big_number_strings: bool = True,
        date_strings: bool = True,
        **options: Any,
    ) -> None:
        """MySQL pool initialization.

        Args:
            connection_limit (int, optional): Maximum number of concurrent
                physical connections. Defaults to `100`
            timezone (str, optional): Session time zone set on every new
                connection. Defaults to `"+00:00"`
            big_number_strings (bool, optional): Return DECIMAL and BIGINT
                columns as exact text. Defaults to `True`
            date_strings (bool, optional): Return temporal columns as
                text. Defaults to `True`
            **options: Passed through to the driver pool

        Raises:
            QuayError: If the configuration is invalid
        """
        if not isinstance(connection_limit, int) or connection_limit < 1:
            raise QuayError("connection_limit: must be a positive integer")
        if timezone and not TIMEZONE_PATTERN.fullmatch(timezone):
            raise QuayError(
                "timezone: must be an offset like +00:00, SYSTEM "
                "or a named zone like Europe/Paris"
            )
        if timezone and "init_command" in options:
            raise QuayError(
                "Cannot combine timezone and init_command. "
                "Pass timezone=None to use a custom init_command"
            )
        self._connection_limit = connection_limit
        self._timezone = timezone
        self._big_number_strings = big_number_strings
        self._date_strings = date_strings
        self._options = options
        self._pool = None
        super().__init__(
            dsn=dsn,
            host=host,
            port=port,
            user=user,
            password=password,
            db=db,
            label=label,
        )

    def _setup_pool(self):
        self._pool_options: Dict[str, Any] = {
            "user": self.user,
            "password": self.password,
            "host": self.host,
            "port": self.port,
            "db": self.db,
            "minsize": 1,
            "maxsize": self._connection_limit,
            "conv": build_conversions(
                self._big_number_strings, self._date_strings
            ),
        }
        if self._timezone:
            self._pool_options["init_command"] = (
                f"SET time_zone = '{self._timezone}'"
            )
        self._pool_options.update(self._options)

    @property
    def connection_limit(self) -> int:
        return self._connection_limit

    @property
    def timezone(self) -> Optional[str]:
        return self._timezone

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def open(self):
        """Open connections to the pool"""
        if self._pool is not None:
            return
        logger.info(f"Opening {self}")
        self._pool = await create_pool(**self._pool_options)

    async def close(self):
        """Close connections to the pool

        Faults raised while the driver tears down its connections are
        reported through `handle_error` rather than raised.
        """
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        logger.info(f"Closing {self}")
        try:
            pool.close()
            await pool.wait_closed()
        except Exception as e:
            self.handle_error(e)

    def handle_error(self, error: BaseException) -> None:
        """Report a connection level fault not tied to any caller"""
        logger.error(f"{self.label} connection error", exc_info=error)

    def _get_pool(self):
        if self._pool is None:
            raise QuayError(f"{self} is not open")
        return self._pool

    async def acquire(self) -> Connection:
        """Lease a connection from the pool

        Raises:
            QuayError: If the pool has not been opened

        Returns:
            Connection: An exclusively owned connection
        """
        conn = await self._get_pool().acquire()
        logger.debug(f"Acquired connection from {self}")
        return conn

    async def release(self, connection: Connection) -> None:
        """Return an idle connection to the pool for reuse"""
        result = self._get_pool().release(connection)
        if isawaitable(result):
            await result
        logger.debug(f"Released connection to {self}")

    async def destroy(self, connection: Connection) -> None:
        """Tear down the physical connection; it is never reused

        The session is shut down with QUIT so the driver marks it
        disconnected and the pool drops it right away. A connection that
        cannot quit in time is closed at the socket level, and the pool
        discards it at its next health sweep.
        """
        try:
            await asyncio.wait_for(
                connection.ensure_closed(), timeout=DESTROY_TIMEOUT
            )
        except Exception as e:
            logger.debug(f"Forcing close of connection from {self}: {e!r}")
            connection.close()
        finally:
            result = self._get_pool().release(connection)
            if isawaitable(result):
                await result
        logger.debug(f"Destroyed connection from {self}")
