"""Caller-facing operations wiring the registry, schema reads and the transform engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Sequence, TypeVar

import asyncpg
from pydantic import ValidationError

from . import schema
from .config import AppConfig
from .errors import (
    ErrorKind,
    OperationError,
    OperationResult,
    RowShapeError,
    StatementTimeoutError,
)
from .mapping import DEFAULT_PREVIEW_LIMIT, MappingEntry, OutputDocument, PreviewRequest
from .registry import SessionRegistry
from .schema import ColumnDescriptor
from .transform import TransformEngine

LOG = logging.getLogger(__name__)

T = TypeVar("T")

MappingInput = Sequence[MappingEntry | Mapping[str, Any]]


class MappingService:
    """Facade exposing session, schema and preview operations.

    Every operation returns an :class:`OperationResult`; failures never
    escape as exceptions, so callers branch on ``result.ok`` / ``result.kind``.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        registry: SessionRegistry | None = None,
        engine: TransformEngine | None = None,
    ) -> None:
        self._config = config or AppConfig()
        self._registry = registry or SessionRegistry(
            self._config.registry,
            bypass=self._config.security_bypass,
            production=self._config.production,
        )
        self._engine = engine or TransformEngine()

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    async def __aenter__(self) -> MappingService:
        self._registry.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    async def shutdown(self) -> None:
        """Close every session; safe to call more than once."""

        await self._registry.close_all()

    async def create_session(self, descriptor: str) -> OperationResult[str]:
        """Admit a connection string and return the id of a new session."""

        return await self._run("create_session", lambda: self._registry.create(descriptor))

    async def close_session(self, session_id: str) -> OperationResult[None]:
        return await self._run("close_session", lambda: self._registry.close(session_id))

    async def list_tables(self, session_id: str) -> OperationResult[list[str]]:
        async def _list() -> list[str]:
            async with self._registry.lease(session_id) as pool:
                async with pool.acquire() as conn:
                    return await schema.list_tables(conn)

        return await self._run("list_tables", _list)

    async def list_columns(self, session_id: str, table: str) -> OperationResult[list[ColumnDescriptor]]:
        async def _list() -> list[ColumnDescriptor]:
            async with self._registry.lease(session_id) as pool:
                async with pool.acquire() as conn:
                    return await schema.list_columns(conn, table)

        return await self._run("list_columns", _list)

    async def preview(
        self,
        session_id: str,
        table: str,
        mapping: MappingInput,
        *,
        limit: int = DEFAULT_PREVIEW_LIMIT,
    ) -> OperationResult[list[OutputDocument]]:
        """Fold up to ``limit`` rows of ``table`` into documents shaped by ``mapping``."""

        async def _preview() -> list[OutputDocument]:
            request = PreviewRequest.model_validate(
                {"table": table, "limit": limit, "mapping": list(mapping)}
            )
            async with self._registry.lease(session_id) as pool:
                return await self._engine.transform(
                    pool, request.table, request.limit, request.mapping
                )

        return await self._run("preview", _preview)

    async def _run(self, operation: str, call: Callable[[], Awaitable[T]]) -> OperationResult[T]:
        try:
            value = await call()
        except RowShapeError as exc:
            LOG.info("Operation rejected", extra={"operation": operation, "kind": exc.kind.value})
            return OperationResult.failure(OperationError.from_exception(exc))
        except ValidationError as exc:
            details = tuple(
                f"{'.'.join(str(part) for part in issue['loc'])}: {issue['msg']}"
                for issue in exc.errors()
            )
            return OperationResult.failure(
                OperationError(ErrorKind.REQUEST_INVALID, "Validation failed", details)
            )
        except (asyncpg.exceptions.QueryCanceledError, asyncio.TimeoutError) as exc:
            LOG.warning("Statement timed out", extra={"operation": operation})
            if self._config.production:
                error = StatementTimeoutError("Query exceeded the statement timeout")
            else:
                error = StatementTimeoutError(f"Query timed out: {exc}")
            return OperationResult.failure(OperationError.from_exception(error))
        except Exception as exc:
            LOG.exception("Operation failed unexpectedly", extra={"operation": operation})
            message = "Internal server error" if self._config.production else str(exc)
            return OperationResult.failure(OperationError(ErrorKind.INTERNAL, message))
        return OperationResult.success(value)


__all__ = ["MappingInput", "MappingService"]
