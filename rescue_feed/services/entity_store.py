# rescue_feed/services/entity_store.py
"""
엔티티 저장소 접근 계층.

서비스 계층은 Firestore 클라이언트를 직접 다루지 않고 이 모듈의 EntityStore 를 통해
필터 / 정렬 스캔 / 개수 제한 조회, 일괄 조회, 단일 문서 트랜잭션을 수행합니다.

- FirestoreEntityStore: 운영 환경. firebase_admin 의 Firestore 클라이언트를 사용합니다.
- InMemoryEntityStore: 로컬 개발(STORE_BACKEND=memory)과 테스트용. 프로세스 내 딕셔너리에
  문서를 보관하며 같은 계약을 지킵니다.

모든 문서는 UTC aware datetime 을 가진 일반 딕셔너리로 주고받습니다.
"""

import copy
import logging
import threading
from functools import cmp_to_key
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from rescue_feed.utils.datetime_utils import DateTimeUtils

logger = logging.getLogger(__name__)

# 컬렉션 이름
CASES = 'cases'
DONATIONS = 'donations'
ADOPTIONS = 'adoptions'
ACHIEVEMENTS = 'achievements'
USERS = 'users'
ANNOUNCEMENTS = 'announcements'

# (field, op, value). op: '==', '!=', '<', '<=', '>', '>=', 'in'
Filter = Tuple[str, str, Any]
# (field, descending)
Ordering = Tuple[str, bool]
UpdateFn = Callable[[Optional[Dict[str, Any]]], Dict[str, Any]]


class EntityStore:
    """저장소 계약. 구현체는 아래 메서드를 모두 제공해야 합니다."""

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def get_many(self, collection: str, doc_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """여러 문서를 한 번에 조회합니다. 존재하지 않는 ID는 결과에서 빠집니다."""
        raise NotImplementedError

    def query(self, collection: str, filters: Sequence[Filter] = (), order_by: Sequence[Ordering] = (),
              start_after: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        필터 후 order_by 순서로 정렬하고, start_after 키 바로 다음부터 최대 limit 개를 반환합니다.
        start_after 는 order_by 의 모든 필드 값을 담은 딕셔너리여야 합니다.
        """
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def run_transaction(self, collection: str, doc_id: str, update_fn: UpdateFn) -> Dict[str, Any]:
        """
        [트랜잭션] 문서를 읽어 update_fn(현재 문서 또는 None) 에 넘기고, 반환된 필드들을 원자적으로 갱신합니다.
        update_fn 이 예외를 던지면 아무것도 기록되지 않고 예외가 그대로 전파됩니다.
        갱신 후의 전체 문서를 반환합니다.
        """
        raise NotImplementedError


class FirestoreEntityStore(EntityStore):
    """firebase_admin Firestore 기반 구현."""

    def __init__(self, db=None):
        # firebase_admin.initialize_app 이후에만 client() 를 호출할 수 있습니다.
        if db is None:
            db = firestore.client()
        self.db = db

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        doc = self.db.collection(collection).document(doc_id).get()
        return DateTimeUtils.from_firestore(doc.to_dict()) if doc.exists else None

    def get_many(self, collection: str, doc_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        unique_ids = sorted({doc_id for doc_id in doc_ids if doc_id})
        if not unique_ids:
            return {}
        collection_ref = self.db.collection(collection)
        refs = [collection_ref.document(doc_id) for doc_id in unique_ids]
        return {
            snapshot.id: DateTimeUtils.from_firestore(snapshot.to_dict())
            for snapshot in self.db.get_all(refs)
            if snapshot.exists
        }

    def query(self, collection: str, filters: Sequence[Filter] = (), order_by: Sequence[Ordering] = (),
              start_after: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        query = self.db.collection(collection)
        for field_path, op, value in filters:
            query = query.where(filter=FieldFilter(field_path, op, DateTimeUtils.for_firestore(value)))
        for field_path, descending in order_by:
            direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
            query = query.order_by(field_path, direction=direction)
        if start_after:
            query = query.start_after(DateTimeUtils.for_firestore(start_after))
        if limit is not None:
            query = query.limit(limit)
        return [DateTimeUtils.from_firestore(doc.to_dict()) for doc in query.stream()]

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        self.db.collection(collection).document(doc_id).set(DateTimeUtils.for_firestore(data))

    def run_transaction(self, collection: str, doc_id: str, update_fn: UpdateFn) -> Dict[str, Any]:
        logger.debug(f"Firestore transaction start: {collection}/{doc_id}")
        doc_ref = self.db.collection(collection).document(doc_id)
        transaction = self.db.transaction()

        @firestore.transactional
        def _update_in_transaction(transaction):
            snapshot = doc_ref.get(transaction=transaction)
            current = DateTimeUtils.from_firestore(snapshot.to_dict()) if snapshot.exists else None
            updates = update_fn(current)
            transaction.update(doc_ref, DateTimeUtils.for_firestore(updates))
            merged = dict(current or {})
            merged.update(updates)
            return merged

        return _update_in_transaction(transaction)


def _matches(doc: Dict[str, Any], flt: Filter) -> bool:
    field_path, op, value = flt
    actual = doc.get(field_path)
    if op == '==':
        return actual == value
    if op == '!=':
        return actual != value
    if op == 'in':
        return actual in value
    if actual is None:
        return False
    if op == '<':
        return actual < value
    if op == '<=':
        return actual <= value
    if op == '>':
        return actual > value
    if op == '>=':
        return actual >= value
    raise ValueError(f"지원하지 않는 필터 연산자입니다: {op}")


def _compare(a: Dict[str, Any], b: Dict[str, Any], order_by: Sequence[Ordering]) -> int:
    for field_path, descending in order_by:
        left, right = a.get(field_path), b.get(field_path)
        if left == right:
            continue
        result = -1 if left < right else 1
        return -result if descending else result
    return 0


class InMemoryEntityStore(EntityStore):
    """
    프로세스 메모리 기반 구현.
    하나의 락으로 모든 연산을 직렬화하므로 run_transaction 은 문서 단위 단일 작성자 보장을 제공합니다.
    """

    def __init__(self, seed: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None):
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()
        for collection, docs in (seed or {}).items():
            for doc_id, data in docs.items():
                self.set(collection, doc_id, data)

    def _docs(self, collection: str) -> Dict[str, Dict[str, Any]]:
        return self._collections.setdefault(collection, {})

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._docs(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def get_many(self, collection: str, doc_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            docs = self._docs(collection)
            return {doc_id: copy.deepcopy(docs[doc_id]) for doc_id in set(doc_ids) if doc_id in docs}

    def query(self, collection: str, filters: Sequence[Filter] = (), order_by: Sequence[Ordering] = (),
              start_after: Optional[Dict[str, Any]] = None, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        filters = [(f, op, DateTimeUtils.for_firestore(v)) for f, op, v in filters]
        with self._lock:
            rows = [doc for doc in self._docs(collection).values() if all(_matches(doc, f) for f in filters)]
            rows.sort(key=cmp_to_key(lambda a, b: _compare(a, b, order_by)))
            if start_after:
                anchor = DateTimeUtils.for_firestore(start_after)
                rows = [doc for doc in rows if _compare(doc, anchor, order_by) > 0]
            if limit is not None:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        with self._lock:
            self._docs(collection)[doc_id] = DateTimeUtils.for_firestore(copy.deepcopy(data))

    def run_transaction(self, collection: str, doc_id: str, update_fn: UpdateFn) -> Dict[str, Any]:
        with self._lock:
            docs = self._docs(collection)
            current = copy.deepcopy(docs.get(doc_id))
            updates = update_fn(copy.deepcopy(current))
            if current is None:
                # Firestore 의 update() 와 동일하게 없는 문서는 갱신할 수 없습니다.
                raise LookupError(f"{collection}/{doc_id} 문서가 존재하지 않습니다.")
            current.update(DateTimeUtils.for_firestore(copy.deepcopy(updates)))
            docs[doc_id] = current
            return copy.deepcopy(current)
