"""
Data producers for preload and invalidation updates.

A producer synthesizes the value that should live under a cache key. The
registry dispatches on :class:`~adaptive_cache.models.DataType`, inferred
from the key prefix when the caller does not pass one.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Union

from pydantic import BaseModel

from .exceptions import DataProducerError
from .models import DataType
from .payloads import ApiPayload, CategoryPayload, SearchPayload, UserPayload

logger = logging.getLogger(__name__)


def key_subject(key: str) -> str:
    """Return the trailing subject of a key.

    ``search:s1:iphone`` -> ``iphone``, ``category:otomotiv`` -> ``otomotiv``.
    """
    parts = key.split(":", 2)
    return parts[-1] if len(parts) > 1 else key


class DataProducer(ABC):
    """Builds a fresh payload for a cache key."""

    @abstractmethod
    async def synthesize(self, key: str) -> BaseModel:
        """Return the payload to cache under ``key``."""


class SearchResultsProducer(DataProducer):
    async def synthesize(self, key: str) -> SearchPayload:
        return SearchPayload(query=key_subject(key))


class CategoryListingProducer(DataProducer):
    async def synthesize(self, key: str) -> CategoryPayload:
        return CategoryPayload(category=key_subject(key))


class ApiResponseProducer(DataProducer):
    async def synthesize(self, key: str) -> ApiPayload:
        return ApiPayload(endpoint=key_subject(key))


class UserRecordProducer(DataProducer):
    async def synthesize(self, key: str) -> UserPayload:
        return UserPayload(resource=key_subject(key))


class CallableProducer(DataProducer):
    """Adapts a plain sync or async function ``fn(key)`` to a producer."""

    def __init__(self, func: Callable[[str], Any]):
        self.func = func

    async def synthesize(self, key: str) -> Any:
        if inspect.iscoroutinefunction(self.func):
            return await self.func(key)
        result = await asyncio.to_thread(self.func, key)
        if inspect.isawaitable(result):
            result = await result
        return result


class DataProducerRegistry:
    """Maps data types to producers."""

    def __init__(self, producers: Optional[Dict[DataType, Union[DataProducer, Callable]]] = None):
        self._producers: Dict[DataType, DataProducer] = {}
        for data_type, producer in (producers or {}).items():
            self.register(data_type, producer)

    @classmethod
    def with_defaults(cls) -> "DataProducerRegistry":
        """Registry with placeholder producers for every data type."""
        return cls({
            DataType.SEARCH: SearchResultsProducer(),
            DataType.CATEGORY: CategoryListingProducer(),
            DataType.API: ApiResponseProducer(),
            DataType.USER: UserRecordProducer(),
        })

    def register(self, data_type: Union[DataType, str], producer: Union[DataProducer, Callable]) -> None:
        data_type = DataType(data_type) if isinstance(data_type, str) else data_type
        if not isinstance(producer, DataProducer):
            if not callable(producer):
                raise TypeError(f"Producer for {data_type.value} must be a DataProducer or callable")
            producer = CallableProducer(producer)
        if data_type in self._producers:
            logger.info(f"Replacing data producer for {data_type.value}")
        self._producers[data_type] = producer

    def get(self, data_type: DataType) -> Optional[DataProducer]:
        return self._producers.get(data_type)

    def registered_types(self):
        return sorted(dt.value for dt in self._producers)

    async def synthesize(self, key: str, data_type: Optional[DataType] = None) -> Any:
        """Produce a payload for ``key`` with the producer of its data type.

        Raises:
            DataProducerError: no producer is registered or the producer failed.
        """
        data_type = data_type or DataType.from_key(key)
        if data_type is None:
            raise DataProducerError(f"Cannot infer data type for key: {key}", key=key)

        producer = self._producers.get(data_type)
        if producer is None:
            raise DataProducerError(
                f"No data producer registered for {data_type.value}",
                key=key,
                data_type=data_type.value
            )

        try:
            return await producer.synthesize(key)
        except DataProducerError:
            raise
        except Exception as e:
            raise DataProducerError(
                f"Data producer for {data_type.value} failed: {e}",
                key=key,
                data_type=data_type.value
            ) from e
