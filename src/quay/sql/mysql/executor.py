from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from asyncmy import Connection
from asyncmy.cursors import DictCursor

Params = Optional[Union[Sequence[Any], Mapping[str, Any]]]


class MysqlExecutor:
    """Executor for running statements on one leased MySQL connection"""

    def __init__(self, connection: Connection) -> None:
        self.connection = connection

    async def run_sql(
        self,
        query: str,
        params: Params = None,
        no_result: bool = False,
    ) -> Optional[List[Dict[str, Any]]]:
        """Execute a statement on the connection

        Args:
            query (str): SQL using `%s` or `%(name)s` placeholders
            params (Union[Sequence, Mapping], optional): Values to bind.
                Defaults to `None`.
            no_result (bool, optional): Skip fetching rows.
                Defaults to `False`.

        Returns:
            Optional[List[Dict[str, Any]]]: The fetched rows
        """
        async with self.connection.cursor(cursor=DictCursor) as cursor:
            await cursor.execute(query, params)
            if no_result:
                return None
            raw = await cursor.fetchall()
            return list(raw or [])
