from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from quay.exception import QuayError

TX_FLOW_FAILURE = "ERR_TX_FLOW_FAILURE"


@dataclass(frozen=True)
class TransactionState:
    """How far the transaction protocol advanced

    - `started`: BEGIN succeeded
    - `committed`: COMMIT succeeded
    - `reverted`: ROLLBACK succeeded

    `started` with neither `committed` nor `reverted` means the outcome is
    unknown and the work must be treated as possibly applied.
    """

    started: bool = False
    committed: bool = False
    reverted: bool = False


class TransactionError(QuayError):
    """Raised for every failed transaction

    Carries the failure that aborted the transaction as `original_error`
    and a snapshot of the protocol state at the time it was raised.
    """

    def __init__(
        self,
        original_error: BaseException,
        state: Optional[TransactionState] = None,
        message: str = TX_FLOW_FAILURE,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.state = state or TransactionState()

    @property
    def started(self) -> bool:
        return self.state.started

    @property
    def committed(self) -> bool:
        return self.state.committed

    @property
    def reverted(self) -> bool:
        return self.state.reverted

    def __str__(self) -> str:
        return f"{self.message}, original error: {self.original_error!r}"
