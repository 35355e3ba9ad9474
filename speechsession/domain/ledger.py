from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import replace

from speechsession.domain.exceptions import InvalidLedgerUpdate
from speechsession.domain.types import LedgerUpdate, RecognitionResult

logger = logging.getLogger(__name__)


class ResultLedger:
    """Index-addressable transcript of one session.

    The ledger is a prefix of settled (final) slots followed by interim slots
    that later updates may overwrite. An update at ``result_index`` replaces
    every slot at or beyond that index; slots below it are never touched.
    """

    def __init__(self, max_alternatives: int = 1) -> None:
        self._max_alternatives = max(1, max_alternatives)
        self._slots: list[RecognitionResult] = []
        self._settled = 0

    def __len__(self) -> int:
        return len(self._slots)

    @property
    def settled_count(self) -> int:
        return self._settled

    @property
    def results(self) -> tuple[RecognitionResult, ...]:
        return tuple(self._slots)

    def transcript(self) -> str:
        return " ".join(r.transcript for r in self._slots if r.transcript)

    def apply_update(self, result_index: int, results: Sequence[RecognitionResult]) -> LedgerUpdate:
        self._check_update(result_index, results)
        normalized = tuple(self._cap_alternatives(r) for r in results)

        self._slots[result_index:] = normalized
        if normalized and normalized[0].is_final:
            self._settled = result_index + 1

        logger.debug(
            f"Ledger update at {result_index}: {len(normalized)} result(s), "
            f"{self._settled}/{len(self._slots)} settled"
        )
        return LedgerUpdate(result_index=result_index, results=normalized)

    def _check_update(self, result_index: int, results: Sequence[RecognitionResult]) -> None:
        if result_index < 0:
            raise InvalidLedgerUpdate(f"result_index must not be negative, got {result_index}")
        if result_index > len(self._slots):
            raise InvalidLedgerUpdate(
                f"result_index {result_index} leaves a gap after {len(self._slots)} result(s)"
            )
        if result_index < self._settled:
            raise InvalidLedgerUpdate(
                f"result_index {result_index} would overwrite settled result {self._settled - 1}"
            )

        finals = [i for i, r in enumerate(results) if r.is_final]
        if len(finals) > 1:
            raise InvalidLedgerUpdate(f"update carries {len(finals)} final results, at most one is allowed")
        if finals and finals[0] != 0:
            raise InvalidLedgerUpdate("a final result must be the first result of an update")
        if finals and result_index != self._settled:
            raise InvalidLedgerUpdate(
                f"final result at {result_index} does not follow the settled prefix of {self._settled}"
            )

    def _cap_alternatives(self, result: RecognitionResult) -> RecognitionResult:
        if len(result.alternatives) <= self._max_alternatives:
            return result
        return replace(result, alternatives=result.alternatives[: self._max_alternatives])
