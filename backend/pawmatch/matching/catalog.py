"""Candidate catalog backends.

Both backends accept the same :class:`CatalogQuery` predicate set so the
scoring engine does not care where animals live:

- :class:`MongoCatalog`: the ``animals`` collection in MongoDB
- :class:`StaticCatalog`: a YAML seed file, for local development
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Protocol

import yaml
from motor.motor_asyncio import AsyncIOMotorCollection

from pawmatch.models.animals import Animal, AnimalStatus

logger = logging.getLogger(__name__)

COLLECTION_NAME = "animals"


@dataclass(frozen=True)
class CatalogQuery:
    """Hard-filter predicate set for a catalog query."""

    require_good_with_kids: bool = False
    require_good_with_pets: bool = False
    breed_contains: str | None = None
    location_contains: str | None = None

    def without_breed(self) -> CatalogQuery:
        return replace(self, breed_contains=None)

    def to_mongo(self) -> dict[str, Any]:
        """Translate to a MongoDB filter document."""
        query: dict[str, Any] = {"status": AnimalStatus.AVAILABLE.value}
        if self.require_good_with_kids:
            query["good_with_kids"] = True
        if self.require_good_with_pets:
            query["good_with_pets"] = True
        if self.breed_contains:
            query["breed"] = {"$regex": re.escape(self.breed_contains), "$options": "i"}
        if self.location_contains:
            query["location"] = {
                "$regex": re.escape(self.location_contains),
                "$options": "i",
            }
        return query

    def matches(self, animal: Animal) -> bool:
        """Evaluate the predicate against one animal in memory."""
        if animal.status != AnimalStatus.AVAILABLE:
            return False
        if self.require_good_with_kids and not animal.good_with_kids:
            return False
        if self.require_good_with_pets and not animal.good_with_pets:
            return False
        if self.breed_contains and self.breed_contains.lower() not in animal.breed.lower():
            return False
        if (
            self.location_contains
            and self.location_contains.lower() not in animal.location.lower()
        ):
            return False
        return True


class CandidateCatalog(Protocol):
    """Queryable store of adoptable animals."""

    async def find(self, query: CatalogQuery, limit: int) -> list[Animal]: ...

    async def count(self, query: CatalogQuery) -> int: ...


async def count_available(catalog: CandidateCatalog, breed: str) -> int:
    """Live number of available animals whose breed contains ``breed``."""
    return await catalog.count(CatalogQuery(breed_contains=breed.strip()))


class MongoCatalog:
    """Catalog backed by the MongoDB ``animals`` collection."""

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self._collection = collection

    async def find(self, query: CatalogQuery, limit: int) -> list[Animal]:
        cursor = self._collection.find(query.to_mongo()).sort("_id", 1).limit(limit)
        docs = await cursor.to_list(length=limit)
        return [Animal.from_document(doc) for doc in docs]

    async def count(self, query: CatalogQuery) -> int:
        return await self._collection.count_documents(query.to_mongo())


class StaticCatalog:
    """In-process catalog over a fixed list of animals, in file order."""

    def __init__(self, animals: list[Animal]) -> None:
        self._animals = list(animals)

    @classmethod
    def from_yaml(cls, path: Path) -> StaticCatalog:
        if not path.exists():
            raise FileNotFoundError(f"Catalog seed file not found: {path}")
        with open(path) as f:
            raw: dict[str, Any] = yaml.safe_load(f) or {}
        animals = [Animal.model_validate(item) for item in raw.get("animals", [])]
        logger.info("Loaded %d animals from %s", len(animals), path)
        return cls(animals)

    async def find(self, query: CatalogQuery, limit: int) -> list[Animal]:
        return [a for a in self._animals if query.matches(a)][:limit]

    async def count(self, query: CatalogQuery) -> int:
        return sum(1 for a in self._animals if query.matches(a))
