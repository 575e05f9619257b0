import copy
import json
import os
from threading import Lock
from typing import Optional, Dict, Any, Iterable, List, Tuple

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from pydantic import ValidationError

from stepboard.errors import StoreUnavailable
from stepboard.models import UserCredential, normalize_email


_db = None


def parse_documents(documents: Iterable[Tuple[str, Dict[str, Any]]], logger=None) -> List[UserCredential]:
    """Parse raw user documents, leaving out any that do not validate."""
    users = []
    for doc_id, data in documents:
        try:
            users.append(UserCredential.from_document(doc_id, data))
        except ValidationError as exc:
            if logger:
                logger.warning(f"[store] skipping unreadable user document {doc_id}: {exc.error_count()} invalid fields")
    return users


def init_firebase():
    global _db
    if _db:
        return _db
    service_account = os.getenv("FIREBASE_SERVICE_ACCOUNT")
    cred_path = os.getenv("FIREBASE_CREDENTIALS")
    try:
        if service_account:
            cred = credentials.Certificate(json.loads(service_account))
        elif cred_path:
            cred = credentials.Certificate(cred_path)
        else:
            raise StoreUnavailable("FIREBASE_CREDENTIALS or FIREBASE_SERVICE_ACCOUNT environment variable not set")
        try:
            app = firebase_admin.get_app()
        except ValueError:
            app = firebase_admin.initialize_app(cred)
        _db = firestore.client(app)
    except StoreUnavailable:
        raise
    except (ValueError, IOError) as exc:
        raise StoreUnavailable(f"Firebase initialization failed: {exc}") from exc
    return _db


class FirestoreCredentialStore:
    """User documents in a Firestore collection, keyed by normalized email."""

    def __init__(self, collection: str = "users", client=None, logger=None):
        self.collection = collection
        self._client = client
        self.logger = logger

    def _users(self):
        db = self._client or init_firebase()
        return db.collection(self.collection)

    def get(self, email: str) -> Optional[UserCredential]:
        doc_id = normalize_email(email)
        try:
            doc = self._users().document(doc_id).get()
        except google_exceptions.GoogleAPIError as exc:
            raise StoreUnavailable(f"Failed reading user {doc_id}: {exc}") from exc
        if not doc.exists:
            return None
        return UserCredential.from_document(doc.id, doc.to_dict())

    def list_documents(self) -> List[Tuple[str, Dict[str, Any]]]:
        try:
            docs = list(self._users().stream())
        except google_exceptions.GoogleAPIError as exc:
            raise StoreUnavailable(f"Failed listing users: {exc}") from exc
        return [(doc.id, doc.to_dict() or {}) for doc in docs]

    def list(self) -> List[UserCredential]:
        return parse_documents(self.list_documents(), self.logger)

    def merge(self, email: str, fields: Dict[str, Any]) -> None:
        doc_id = normalize_email(email)
        try:
            self._users().document(doc_id).set(dict(fields), merge=True)
        except google_exceptions.GoogleAPIError as exc:
            raise StoreUnavailable(f"Failed writing user {doc_id}: {exc}") from exc


class InMemoryCredentialStore:
    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None, logger=None):
        self._documents: Dict[str, Dict[str, Any]] = {}
        self._lock = Lock()
        self.logger = logger
        for email, data in (documents or {}).items():
            self.merge(email, data)

    def get(self, email: str) -> Optional[UserCredential]:
        doc_id = normalize_email(email)
        with self._lock:
            data = copy.deepcopy(self._documents.get(doc_id))
        if data is None:
            return None
        return UserCredential.from_document(doc_id, data)

    def list_documents(self) -> List[Tuple[str, Dict[str, Any]]]:
        with self._lock:
            snapshot = copy.deepcopy(self._documents)
        return list(snapshot.items())

    def list(self) -> List[UserCredential]:
        return parse_documents(self.list_documents(), self.logger)

    def merge(self, email: str, fields: Dict[str, Any]) -> None:
        doc_id = normalize_email(email)
        with self._lock:
            self._documents.setdefault(doc_id, {}).update(copy.deepcopy(fields))

    def document(self, email: str) -> Optional[Dict[str, Any]]:
        """Raw stored fields, for inspection."""
        with self._lock:
            return copy.deepcopy(self._documents.get(normalize_email(email)))


def create_credential_store_from_env(logger=None):
    backend = os.getenv("CREDENTIAL_STORE_BACKEND", "firestore").strip().lower()
    if backend == "memory":
        if logger:
            logger.warning("Using in-memory credential store; data is lost on restart")
        return InMemoryCredentialStore(logger=logger)
    if backend == "firestore":
        collection = os.getenv("FIRESTORE_USERS_COLLECTION", "users").strip() or "users"
        return FirestoreCredentialStore(collection=collection, logger=logger)
    raise StoreUnavailable(f"Unsupported CREDENTIAL_STORE_BACKEND '{backend}'")
