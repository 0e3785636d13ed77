"""
Firestore-backed repositories.

Incident mutations run inside Firestore transactions, which gives optimistic
per-document concurrency control: a transaction that read a document changed
by someone else is retried by the client library.
"""

import logging
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

from firebase_admin import firestore

from cera.core.errors import NotFoundError
from cera.models.incident import Incident, IncidentStatus
from cera.models.notification import Notification
from cera.models.user import User, UserRole
from cera.repositories.base import IncidentRepository, NotificationRepository, UserRepository
from cera.utils.firestore_helpers import to_firestore, where_filter

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _newest_first(items):
    return sorted(items, key=lambda item: item.created_at, reverse=True)


class FirestoreIncidentRepository(IncidentRepository):

    COLLECTION = "incidents"

    def __init__(self, db):
        self.db = db
        self._collection = db.collection(self.COLLECTION)

    def _to_document(self, incident: Incident) -> dict:
        data = to_firestore(incident.model_dump(exclude={"id"}))
        # Denormalized for array_contains lookups; entries are maps and cannot be queried directly.
        data["volunteer_ids"] = [entry.volunteer for entry in incident.assigned_volunteers]
        return data

    def _from_snapshot(self, snapshot) -> Incident:
        data = snapshot.to_dict() or {}
        data["id"] = snapshot.id
        return Incident.model_validate(data)

    def create(self, incident: Incident) -> Incident:
        doc_ref = self._collection.document()
        incident = incident.model_copy(update={"id": doc_ref.id})
        try:
            doc_ref.set(self._to_document(incident))
        except Exception as e:
            logger.error(f"Failed to save incident to Firestore: {e}", exc_info=True)
            raise
        logger.info(f"Incident saved to Firestore: {doc_ref.id}")
        return incident

    def get(self, incident_id: str) -> Optional[Incident]:
        snapshot = self._collection.document(incident_id).get()
        if not snapshot.exists:
            return None
        return self._from_snapshot(snapshot)

    def mutate(self, incident_id: str, fn: Callable[[Incident], T]) -> Tuple[Incident, T]:
        ref = self._collection.document(incident_id)
        transaction = self.db.transaction()

        @firestore.transactional
        def _apply(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError(f"Incident {incident_id} not found")
            incident = self._from_snapshot(snapshot)
            result = fn(incident)
            transaction.set(ref, self._to_document(incident))
            return incident, result

        return _apply(transaction)

    def list(self, statuses: Optional[Iterable[IncidentStatus]] = None) -> List[Incident]:
        query = self._collection
        if statuses:
            query = where_filter(query, "status", "in", [IncidentStatus(s).value for s in statuses])
        return _newest_first(self._from_snapshot(doc) for doc in query.stream())

    def list_by_reporter(self, reporter_id: str) -> List[Incident]:
        query = where_filter(self._collection, "reporter", "==", reporter_id)
        return _newest_first(self._from_snapshot(doc) for doc in query.stream())

    def list_by_volunteer(self, volunteer_id: str) -> List[Incident]:
        query = where_filter(self._collection, "volunteer_ids", "array_contains", volunteer_id)
        return _newest_first(self._from_snapshot(doc) for doc in query.stream())

    def list_in_bounds(self, min_lat: float, max_lat: float, min_lon: float, max_lon: float) -> List[Incident]:
        # Firestore allows range filters on a single field only; longitude is checked in memory.
        query = where_filter(self._collection, "location.latitude", ">=", min_lat)
        query = where_filter(query, "location.latitude", "<=", max_lat)
        incidents = []
        for doc in query.stream():
            incident = self._from_snapshot(doc)
            if min_lon <= incident.location.longitude <= max_lon:
                incidents.append(incident)
        return incidents


class FirestoreUserRepository(UserRepository):

    COLLECTION = "users"

    def __init__(self, db):
        self.db = db
        self._collection = db.collection(self.COLLECTION)

    def _from_snapshot(self, snapshot) -> User:
        data = snapshot.to_dict() or {}
        data["id"] = snapshot.id
        return User.model_validate(data)

    def create(self, user: User) -> User:
        doc_ref = self._collection.document(user.id) if user.id else self._collection.document()
        user = user.model_copy(update={"id": doc_ref.id})
        doc_ref.set(to_firestore(user.model_dump(exclude={"id"})))
        logger.info(f"User created: {doc_ref.id}")
        return user

    def get(self, user_id: str) -> Optional[User]:
        snapshot = self._collection.document(user_id).get()
        if not snapshot.exists:
            return None
        return self._from_snapshot(snapshot)

    def get_many(self, user_ids: Iterable[str]) -> List[User]:
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return []
        refs = [self._collection.document(user_id) for user_id in ids]
        found = {
            snapshot.id: self._from_snapshot(snapshot)
            for snapshot in self.db.get_all(refs)
            if snapshot.exists
        }
        return [found[user_id] for user_id in ids if user_id in found]

    def get_by_email(self, email: str) -> Optional[User]:
        query = where_filter(self._collection, "email", "==", email.strip().lower()).limit(1)
        docs = list(query.stream())
        return self._from_snapshot(docs[0]) if docs else None

    def update(self, user_id: str, fn: Callable[[User], T]) -> Tuple[User, T]:
        ref = self._collection.document(user_id)
        transaction = self.db.transaction()

        @firestore.transactional
        def _apply(transaction):
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise NotFoundError(f"User {user_id} not found")
            user = self._from_snapshot(snapshot)
            result = fn(user)
            transaction.set(ref, to_firestore(user.model_dump(exclude={"id"})))
            return user, result

        return _apply(transaction)

    def delete(self, user_id: str) -> bool:
        ref = self._collection.document(user_id)
        if not ref.get().exists:
            return False
        ref.delete()
        return True

    def list_by_role(self, role: UserRole) -> List[User]:
        query = where_filter(self._collection, "role", "==", UserRole(role).value)
        return [self._from_snapshot(doc) for doc in query.stream()]

    def list_all(self) -> List[User]:
        return [self._from_snapshot(doc) for doc in self._collection.stream()]


class FirestoreNotificationRepository(NotificationRepository):

    COLLECTION = "notifications"

    def __init__(self, db):
        self.db = db
        self._collection = db.collection(self.COLLECTION)

    def _from_snapshot(self, snapshot) -> Notification:
        data = snapshot.to_dict() or {}
        data["id"] = snapshot.id
        return Notification.model_validate(data)

    def add(self, notification: Notification) -> Notification:
        doc_ref = self._collection.document()
        notification = notification.model_copy(update={"id": doc_ref.id})
        doc_ref.set(to_firestore(notification.model_dump(exclude={"id"})))
        return notification

    def list_for_user(self, user_id: str) -> List[Notification]:
        query = where_filter(self._collection, "user", "==", user_id)
        return _newest_first(self._from_snapshot(doc) for doc in query.stream())

    def mark_read(self, notification_id: str, user_id: str) -> Optional[Notification]:
        ref = self._collection.document(notification_id)
        snapshot = ref.get()
        if not snapshot.exists:
            return None
        notification = self._from_snapshot(snapshot)
        if notification.user != user_id:
            return None
        ref.update({"read": True})
        return notification.model_copy(update={"read": True})
