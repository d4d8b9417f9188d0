"""
Base class for diagnostic checks.

All checks must inherit from Checker and implement metadata() and check().

Each check lives in its own module under pgdoctor.checks and exposes:
- a module-level metadata() function returning its CheckMetadata
- a typing.Protocol naming the gateway methods it needs
- a Checker subclass constructed as Cls(queries, instance=None)

Checks are stateless between invocations and only issue read-only
gateway queries. check() may be cancelled at any await point; it must
not hold resources that need cleanup beyond what the gateway manages.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pgdoctor.check.instance import InstanceMetadata
from pgdoctor.check.models import CheckMetadata, Report


class Checker(ABC):
    """
    Abstract base class for checks.

    Attributes:
        queries: The query gateway, narrowed by each check's Protocol.
        instance: Optional instance metadata shared by the run.

    Example:
        def metadata() -> CheckMetadata:
            return CheckMetadata(
                check_id="invalid-indexes",
                name="Invalid Indexes",
                category=Category.INDEXES,
            )

        class InvalidIndexesChecker(Checker):
            def metadata(self) -> CheckMetadata:
                return metadata()

            async def check(self) -> Report:
                report = self.new_report()
                rows = await self.queries.broken_indexes()
                ...
                return report
    """

    def __init__(self, queries: Any, instance: InstanceMetadata | None = None) -> None:
        self.queries = queries
        self.instance = instance

    @abstractmethod
    def metadata(self) -> CheckMetadata:
        """Return this check's static metadata."""
        ...

    @abstractmethod
    async def check(self) -> Report:
        """
        Run the check against the gateway.

        Returns:
            A Report whose severity is the max over its findings.

        Raises:
            QueryError: If a gateway query fails.
        """
        ...

    def new_report(self) -> Report:
        """Create an empty OK report for this check."""
        return Report.new(self.metadata())

    def __repr__(self) -> str:
        meta = self.metadata()
        return f"<{self.__class__.__name__} {meta.category.value}/{meta.check_id}>"
