import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from exambank.core.config import Settings, get_settings
from exambank.core.errors import ConfigurationError, TransientError
from exambank.db.models import ExamModels, get_models
from exambank.db.questions_repo import InMemoryQuestionBankRepo, QuestionBankRepo

logger = logging.getLogger(__name__)


def _resolved(future: "asyncio.Future") -> bool:
    return future.done() and not future.cancelled() and future.exception() is None


@dataclass
class ExamConnection:
    """A live client bound to one exam's dedicated database."""

    exam_key: str
    client: Any
    database: AsyncDatabase
    models: ExamModels


class DatabaseRouter:
    """
    Maps canonical exam keys to live connections, one store per key.

    Owned by application startup and injected into handlers. Concurrent callers
    for the same key share one pending connection attempt; a failed attempt is
    evicted so the next call retries.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Callable[..., Any] = AsyncMongoClient,
    ) -> None:
        self.settings = settings or get_settings()
        self.client_factory = client_factory
        self._lock = asyncio.Lock()
        self._connections: Dict[str, "asyncio.Future[ExamConnection]"] = {}
        # clients evicted while requests may still hold them; closed on reset
        self._retired: List[Any] = []
        self._indexed: Set[str] = set()

    @property
    def timeout(self) -> float:
        return self.settings.operation_timeout_seconds

    def cached_keys(self) -> List[str]:
        return sorted(
            key for key, future in self._connections.items() if _resolved(future)
        )

    async def get_connection(self, exam_key: str) -> ExamConnection:
        store = self.settings.store_for(exam_key)
        if store is None:
            raise ConfigurationError(f"No data store configured for exam type {exam_key!r}", examType=exam_key)

        async with self._lock:
            future = self._connections.get(exam_key)
            owner = future is None
            if owner:
                future = asyncio.get_running_loop().create_future()
                self._connections[exam_key] = future

        if owner:
            try:
                connection = await self._open(exam_key, store)
            except asyncio.CancelledError:
                await self._evict(exam_key, future)
                future.cancel()
                raise
            except Exception as exc:
                await self._evict(exam_key, future)
                future.set_exception(exc)
                # mark retrieved so an unobserved failure is not reported at teardown
                future.exception()
                raise
            future.set_result(connection)
            return connection

        connection = await asyncio.shield(future)
        if await self._is_ready(connection):
            logger.debug("Using existing connection for %s", exam_key)
            return connection
        logger.warning("Cached connection for %s is not ready; reconnecting", exam_key)
        await self._evict(exam_key, future, retire=True)
        return await self.get_connection(exam_key)

    async def get_repo(self, exam_key: str) -> QuestionBankRepo:
        connection = await self.get_connection(exam_key)
        return QuestionBankRepo(exam_key, connection.models, client=connection.client, timeout=self.timeout)

    async def _open(self, exam_key: str, store: Dict[str, str]) -> ExamConnection:
        logger.info("Creating new connection for %s database %s", exam_key, store["db_name"])
        client = self.client_factory(store["uri"], timeoutMS=int(self.timeout * 1000), tz_aware=True)
        try:
            await asyncio.wait_for(client.admin.command("ping"), timeout=self.timeout)
            database = client[store["db_name"]]
            ensure_indexes = store["db_name"] not in self._indexed
            models = await asyncio.wait_for(
                get_models(database, ensure_indexes=ensure_indexes), timeout=self.timeout
            )
            self._indexed.add(store["db_name"])
        except (asyncio.TimeoutError, PyMongoError, OSError) as exc:
            await client.close()
            logger.error("Connection to %s failed: %s", exam_key, exc)
            raise TransientError(f"Could not connect to {exam_key} store: {exc}", examType=exam_key) from exc
        logger.info("Connected to %s database", exam_key)
        return ExamConnection(exam_key=exam_key, client=client, database=database, models=models)

    async def _is_ready(self, connection: ExamConnection) -> bool:
        try:
            await asyncio.wait_for(connection.client.admin.command("ping"), timeout=self.timeout)
        except (asyncio.TimeoutError, PyMongoError, OSError):
            return False
        return True

    async def _evict(self, exam_key: str, future: "asyncio.Future[ExamConnection]", retire: bool = False) -> None:
        async with self._lock:
            if self._connections.get(exam_key) is not future:
                return
            del self._connections[exam_key]
            if retire and _resolved(future):
                self._retired.append(future.result().client)

    async def reset(self) -> None:
        """Close and forget every cached and retired connection."""

        async with self._lock:
            futures = list(self._connections.items())
            self._connections.clear()
            retired, self._retired = self._retired, []
        for exam_key, future in futures:
            if _resolved(future):
                await future.result().client.close()
                logger.info("Closed connection for %s", exam_key)
        for client in retired:
            await client.close()

    async def close(self) -> None:
        await self.reset()


class InMemoryRouter(DatabaseRouter):
    """Router handing out in-memory repositories, one per canonical key, for tests."""

    def __init__(self, settings: Optional[Settings] = None, exam_keys: tuple = ("JEE", "NEET")) -> None:
        self.settings = settings or get_settings()
        self.exam_keys = exam_keys
        self.repos: Dict[str, InMemoryQuestionBankRepo] = {}

    def cached_keys(self) -> List[str]:
        return sorted(self.repos)

    async def get_repo(self, exam_key: str) -> InMemoryQuestionBankRepo:
        if exam_key not in self.exam_keys:
            raise ConfigurationError(f"No data store configured for exam type {exam_key!r}", examType=exam_key)
        if exam_key not in self.repos:
            self.repos[exam_key] = InMemoryQuestionBankRepo(exam_key)
        return self.repos[exam_key]

    async def reset(self) -> None:
        self.repos.clear()
