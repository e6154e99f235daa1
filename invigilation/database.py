import copy
import operator
import uuid
from collections.abc import Callable, Iterable, Iterator, Mapping
from datetime import UTC, datetime
from typing import Any

from invigilation.exceptions import StoreError

Document = dict[str, Any]
Filter = tuple[str, str, Any]

_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "in": lambda field, values: field in values,
    "not-in": lambda field, values: field not in values,
    "array-contains": lambda field, value: (
        isinstance(field, list) and value in field
    ),
}


def _matches(document: Document, filters: Iterable[Filter]) -> bool:
    for field, op, value in filters:
        compare = _OPERATORS.get(op)
        if compare is None:
            raise StoreError(f"Unsupported filter operator: {op!r}")
        if field == "id":
            actual = document.get("id")
        elif field not in document:
            return False
        else:
            actual = document[field]
        try:
            if not compare(actual, value):
                return False
        except TypeError:
            return False
    return True


class InMemoryDocumentStore:
    """
    Simple in-memory document database, organised in named collections.

    Documents are plain dicts. Every read returns a copy, so callers only
    change stored state through add/update/update_if.
    """

    def __init__(self, now_fn: Callable[[], datetime] | None = None) -> None:
        self._collections: dict[str, dict[str, Document]] = {}
        self._now_fn = now_fn or (lambda: datetime.now(UTC))

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    def add(self, collection: str, fields: Mapping[str, Any]) -> str:
        document_id = uuid.uuid4().hex
        now = self._now_fn()
        document = copy.deepcopy(dict(fields))
        document["id"] = document_id
        document["created_at"] = now
        document["updated_at"] = now
        self._collection(collection)[document_id] = document
        return document_id

    def put(
        self, collection: str, document_id: str, fields: Mapping[str, Any]
    ) -> None:
        """Store a document under a caller-chosen id, replacing any existing one."""
        now = self._now_fn()
        document = copy.deepcopy(dict(fields))
        document["id"] = document_id
        document.setdefault("created_at", now)
        document["updated_at"] = now
        self._collection(collection)[document_id] = document

    def get(self, collection: str, document_id: str) -> Document | None:
        document = self._collection(collection).get(document_id)
        return copy.deepcopy(document) if document is not None else None

    def update(
        self, collection: str, document_id: str, fields: Mapping[str, Any]
    ) -> None:
        document = self._collection(collection).get(document_id)
        if document is None:
            raise StoreError(
                f"No document to update: {collection}/{document_id}"
            )
        document.update(copy.deepcopy(dict(fields)))
        document["updated_at"] = self._now_fn()

    def update_if(
        self,
        collection: str,
        document_id: str,
        expected: Mapping[str, Iterable[Any]],
        fields: Mapping[str, Any],
    ) -> bool:
        """
        Apply `fields` only if every field in `expected` currently holds one
        of the listed values. Returns True if the write happened.
        """
        document = self._collection(collection).get(document_id)
        if document is None:
            return False
        # check and set without an await in between, so no other task can interleave
        for field, allowed in expected.items():
            if document.get(field) not in list(allowed):
                return False
        document.update(copy.deepcopy(dict(fields)))
        document["updated_at"] = self._now_fn()
        return True

    def delete(self, collection: str, document_id: str) -> None:
        self._collection(collection).pop(document_id, None)

    def query(
        self,
        collection: str,
        filters: Iterable[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        filters = list(filters)
        results = [
            copy.deepcopy(document)
            for document in self._collection(collection).values()
            if _matches(document, filters)
        ]
        if order_by is not None:
            # documents missing the ordering field go last
            present = [d for d in results if d.get(order_by) is not None]
            missing = [d for d in results if d.get(order_by) is None]
            try:
                present.sort(key=lambda d: d[order_by], reverse=descending)
            except TypeError as exc:
                raise StoreError(
                    f"Cannot order {collection} by {order_by!r}"
                ) from exc
            results = present + missing
        return results

    def all(self, collection: str) -> list[Document]:
        return self.query(collection)

    def clear(self) -> None:
        self._collections.clear()

    def __iter__(self) -> Iterator[str]:
        return iter(self._collections)

    def __len__(self) -> int:
        return sum(len(c) for c in self._collections.values())
