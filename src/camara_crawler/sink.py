import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from pymongo import ASCENDING, UpdateOne
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import BulkWriteError, PyMongoError

from .errors import PersistenceConflictError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntitySpec:
    name: str
    collection: str
    key_fields: Tuple[str, ...]

    def key_filter(self, key: Any) -> Dict[str, Any]:
        if isinstance(key, Mapping):
            values = tuple(key.get(f) for f in self.key_fields)
        elif isinstance(key, (tuple, list)):
            values = tuple(key)
        else:
            values = (key,)

        if len(values) != len(self.key_fields):
            raise ValueError(f"key {key!r} does not match key fields {self.key_fields}")
        if any(v is None or v == "" for v in values):
            raise ValueError(f"key {key!r} has an empty part")
        return dict(zip(self.key_fields, values))


DEPUTY = "deputy"
PROPOSITION = "proposition"
VOTE = "vote"


def default_entities(collections: Mapping[str, str]) -> Dict[str, EntitySpec]:
    return {
        DEPUTY: EntitySpec(DEPUTY, collections.get("deputies", "deputies"), ("deputy_id",)),
        PROPOSITION: EntitySpec(PROPOSITION, collections.get("propositions", "propositions"), ("proposition_id",)),
        VOTE: EntitySpec(VOTE, collections.get("votes", "votes"), ("voting_id", "deputy_id", "proposition_id")),
    }


@dataclass(frozen=True)
class RecordFailure:
    index: int
    key: Any
    error: str


@dataclass
class BulkUpsertResult:
    entity: str
    attempted: int = 0
    written: int = 0
    failures: List[RecordFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class UpsertSink:
    """
    Natural-key upserts with set-on-conflict semantics.

    Every field passed in a call replaces the stored value as a whole; fields
    not passed are left as they are. Key fields are always written.
    """

    def __init__(self, db: Database, entities: Mapping[str, EntitySpec]):
        self.db = db
        self.entities = dict(entities)

    def spec(self, entity: str) -> EntitySpec:
        if entity not in self.entities:
            raise KeyError(f"Unknown entity type: {entity}")
        return self.entities[entity]

    def collection(self, entity: str) -> Collection:
        return self.db[self.spec(entity).collection]

    def ensure_indexes(self) -> None:
        for spec in self.entities.values():
            col = self.db[spec.collection]
            col.create_index([(f, ASCENDING) for f in spec.key_fields], unique=True)
            logger.debug(f"INDEX: collection={spec.collection} key={spec.key_fields}")

    def _prepare(self, spec: EntitySpec, key: Any, fields: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        filt = spec.key_filter(key)
        if not isinstance(fields, Mapping):
            raise ValueError(f"fields must be a mapping, got {type(fields).__name__}")
        doc = {k: v for k, v in fields.items() if k != "_id"}
        for k, v in filt.items():
            if k in doc and doc[k] != v:
                raise ValueError(f"field {k}={doc[k]!r} contradicts key {v!r}")
        doc.update(filt)
        return filt, doc

    def upsert(self, entity: str, key: Any, fields: Mapping[str, Any]) -> None:
        spec = self.spec(entity)
        try:
            filt, doc = self._prepare(spec, key, fields)
        except ValueError as e:
            raise PersistenceConflictError(entity=entity, key=key, reason=str(e)) from e

        try:
            self.collection(entity).update_one(filt, {"$set": doc}, upsert=True)
        except PyMongoError as e:
            raise PersistenceConflictError(entity=entity, key=key, reason=str(e)) from e

    def bulk_upsert(self, entity: str, items: Iterable[Tuple[Any, Mapping[str, Any]]]) -> BulkUpsertResult:
        spec = self.spec(entity)
        result = BulkUpsertResult(entity=entity)

        ops: List[UpdateOne] = []
        op_index: List[Tuple[int, Any]] = []

        for i, item in enumerate(items):
            result.attempted += 1
            try:
                key, fields = item
                filt, doc = self._prepare(spec, key, fields)
            except (TypeError, ValueError) as e:
                key = item[0] if isinstance(item, (tuple, list)) and item else None
                result.failures.append(RecordFailure(index=i, key=key, error=str(e)))
                continue
            ops.append(UpdateOne(filt, {"$set": doc}, upsert=True))
            op_index.append((i, key))

        if not ops:
            return result

        try:
            self.collection(entity).bulk_write(ops, ordered=False)
            result.written = len(ops)
        except BulkWriteError as e:
            errors = (e.details or {}).get("writeErrors", [])
            for err in errors:
                j = int(err.get("index", -1))
                i, key = op_index[j] if 0 <= j < len(op_index) else (-1, None)
                result.failures.append(RecordFailure(index=i, key=key, error=str(err.get("errmsg", err))))
            result.written = len(ops) - len(errors)
        except PyMongoError as e:
            # whole batch rejected (connection lost, ...): report every record
            for i, key in op_index:
                result.failures.append(RecordFailure(index=i, key=key, error=str(e)))

        result.failures.sort(key=lambda f: f.index)
        for f in result.failures:
            logger.warning(f"UPSERT_FAIL: entity={entity} index={f.index} key={f.key} err={f.error}")
        return result

    def find(self, entity: str, key: Any, projection: Optional[Sequence[str]] = None) -> Optional[Dict[str, Any]]:
        spec = self.spec(entity)
        proj = {"_id": 0}
        for p in projection or ():
            proj[p] = 1
        return self.collection(entity).find_one(spec.key_filter(key), projection=proj)
