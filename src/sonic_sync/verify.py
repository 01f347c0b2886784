"""Post-write verification of CONFIG_DB changes.

Verification reads through a fresh connection, never through the cached
snapshot, so a stale local mirror cannot produce a false pass. Mismatches are
returned as data; only I/O failures raise.
"""
import logging
from typing import Awaitable, Callable, Iterable

from .configdb.client import ConfigDBClient
from .types import ChangeType, ConfigChange, VerificationError, VerificationResult

logger = logging.getLogger(__name__)

ALL_FIELDS = "(all)"


async def compare_changes(client: ConfigDBClient, changes: Iterable[ConfigChange]) -> VerificationResult:
    """Compare expected changes against what ``client`` reads back.

    Add/modify pass when every expected field is present with the same value;
    extra live fields (platform defaults) are fine. Delete passes when the key
    is gone.
    """
    result = VerificationResult()

    for change in changes:
        if change.type in (ChangeType.ADD, ChangeType.MODIFY):
            actual = await client.get(change.table, change.key)
            if not actual:
                result.failed += 1
                result.errors.append(VerificationError(
                    table=change.table,
                    key=change.key,
                    field=ALL_FIELDS,
                    expected="present",
                    actual="",
                ))
                continue

            all_match = True
            for field, expected in change.fields.items():
                got = actual.get(field)
                if got != expected:
                    all_match = False
                    result.failed += 1
                    result.errors.append(VerificationError(
                        table=change.table,
                        key=change.key,
                        field=field,
                        expected=expected,
                        actual=got or "",
                    ))
            if all_match:
                result.passed += 1

        elif change.type == ChangeType.DELETE:
            if await client.exists(change.table, change.key):
                result.failed += 1
                result.errors.append(VerificationError(
                    table=change.table,
                    key=change.key,
                    field=ALL_FIELDS,
                    expected="deleted",
                    actual="present",
                ))
            else:
                result.passed += 1

    return result


class ChangeVerifier:
    """Runs :func:`compare_changes` over a connection opened per call."""

    def __init__(self, open_client: Callable[[], Awaitable[ConfigDBClient]], name: str = ""):
        self._open_client = open_client
        self.name = name

    async def verify(self, changes: Iterable[ConfigChange]) -> VerificationResult:
        client = await self._open_client()
        try:
            result = await compare_changes(client, changes)
        finally:
            await client.close()
        if result.failed:
            logger.warning(
                f"Verification on {self.name}: {result.passed} passed, {result.failed} failed"
            )
        else:
            logger.info(f"Verification on {self.name}: {result.passed} passed")
        return result
