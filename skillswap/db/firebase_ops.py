import firebase_admin
from firebase_admin import credentials, firestore
from google.cloud.firestore_v1.base_query import FieldFilter
import logging
import os
import secrets
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any, Sequence, Tuple
from pydantic import BaseModel as PydanticBaseModel # Alias Pydantic's BaseModel

from skillswap.core.config import settings

logger = logging.getLogger(__name__)

Filter = Tuple[str, str, Any]


def generate_object_id() -> str:
    """
    24-hex-character document id: 4 bytes of epoch seconds followed by 8 random bytes,
    so ids sort roughly by creation time.
    """
    return f"{int(time.time()):08x}{secrets.token_hex(8)}"


def as_utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Firestore hands back tz-aware timestamps; we write naive UTC. Compare in naive UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class FirebaseManager:
    """
    Firebase Firestore Manager for handling database operations
    """
    _instance = None
    _db = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(FirebaseManager, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if self._db is None:
            self.initialize_firebase()

    def initialize_firebase(self):
        """Initialize Firebase Admin SDK"""
        try:
            # Check if Firebase is already initialized
            try:
                app = firebase_admin.get_app()
                self._db = firestore.client(app)
                logger.info("Using existing Firebase app")
                return
            except ValueError:
                pass # App doesn't exist, so we need to initialize it

            options = {'projectId': settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
            service_account_path = os.path.abspath(settings.FIREBASE_CREDENTIALS)

            if os.path.exists(service_account_path):
                cred = credentials.Certificate(service_account_path)
                logger.info(f"Initializing Firebase with service account key from {service_account_path}")
            else:
                cred = credentials.ApplicationDefault()
                logger.info("Initializing Firebase with application default credentials")
            firebase_admin.initialize_app(cred, options)

            self._db = firestore.client()
            logger.info("Firebase Firestore client initialized successfully")

        except Exception as e:
            logger.error(f"Error initializing Firebase: {e}")
            logger.error("Set FIREBASE_CREDENTIALS to a service account key or configure GOOGLE_APPLICATION_CREDENTIALS.")

    def get_db(self):
        """Get Firestore database client"""
        if self._db is None:
            logger.warning("Firestore DB client accessed before initialization or initialization failed.")
        return self._db

class FirestoreBaseModel:
    """
    Base model class for Firestore database operations, adapted for Pydantic.

    Every read returns the document id under the 'id' key so documents can be
    parsed straight into the schema models.
    """

    def __init__(self):
        self.firebase_manager = FirebaseManager()
        self.db = self.firebase_manager.get_db()

    def _prepare_data_for_firestore(self, data_model: Any) -> Dict[str, Any]:
        """Converts Pydantic model or dict to Firestore-compatible dict."""
        if isinstance(data_model, PydanticBaseModel):
            data = data_model.model_dump(exclude_unset=True)
        elif isinstance(data_model, dict):
            data = data_model.copy()
        else:
            raise ValueError("Data must be a Pydantic model or a dictionary.")
        # The document id lives in the document path, not in the body
        data.pop('id', None)
        return data

    def _parse(self, doc_id: str, data: Dict[str, Any], pydantic_model: Optional[type[PydanticBaseModel]]) -> Any:
        record = {**data, 'id': doc_id}
        if pydantic_model:
            return pydantic_model(**record)
        return record

    def save(self, collection_name: str, data_model: Any, document_id: Optional[str] = None) -> Optional[str]:
        """Save Pydantic model or dictionary to Firestore"""
        if not self.db:
            logger.error("Database not initialized")
            return None

        data = self._prepare_data_for_firestore(data_model)

        now = datetime.utcnow() # Use UTC for consistency
        data['updated_at'] = now
        if not document_id or not self.get(collection_name, document_id): # Set created_at only if new or not present
            data.setdefault('created_at', now)

        try:
            document_id = document_id or generate_object_id()
            doc_ref = self.db.collection(collection_name).document(document_id)
            doc_ref.set(data, merge=True) # Use set with merge=True for creating or updating
            return document_id
        except Exception as e:
            logger.error(f"Error saving to Firestore collection '{collection_name}': {e}")
            return None

    def get(self, collection_name: str, document_id: str, pydantic_model: Optional[type[PydanticBaseModel]] = None) -> Optional[Any]:
        """Get document from Firestore by ID, optionally parsing into a Pydantic model."""
        if not self.db:
            logger.error("Database not initialized")
            return None

        try:
            doc = self.db.collection(collection_name).document(document_id).get()
            if doc.exists:
                return self._parse(doc.id, doc.to_dict(), pydantic_model)
            return None
        except Exception as e:
            logger.error(f"Error getting document '{document_id}' from Firestore collection '{collection_name}': {e}")
            return None

    def get_all(self, collection_name: str, limit: Optional[int] = None, pydantic_model: Optional[type[PydanticBaseModel]] = None) -> List[Any]:
        """Get all documents from a collection, optionally parsing into Pydantic models."""
        if not self.db:
            logger.error("Database not initialized")
            return []

        try:
            collection_ref = self.db.collection(collection_name)
            docs_stream = collection_ref.limit(limit).stream() if limit else collection_ref.stream()
            return [self._parse(doc.id, doc.to_dict(), pydantic_model) for doc in docs_stream]
        except Exception as e:
            logger.error(f"Error getting documents from Firestore collection '{collection_name}': {e}")
            return []

    def query(self, collection_name: str, field: str, operator: str, value: Any, pydantic_model: Optional[type[PydanticBaseModel]] = None) -> List[Any]:
        """Query documents by field, optionally parsing into Pydantic models."""
        return self.query_many(collection_name, [(field, operator, value)], pydantic_model=pydantic_model)

    def query_many(self, collection_name: str, filters: Sequence[Filter], pydantic_model: Optional[type[PydanticBaseModel]] = None) -> List[Any]:
        """Query documents matching every (field, operator, value) filter."""
        if not self.db:
            logger.error("Database not initialized")
            return []

        try:
            query_ref = self.db.collection(collection_name)
            for field, operator, value in filters:
                query_ref = query_ref.where(filter=FieldFilter(field, operator, value))
            return [self._parse(doc.id, doc.to_dict(), pydantic_model) for doc in query_ref.stream()]
        except Exception as e:
            logger.error(f"Error querying Firestore collection '{collection_name}': {e}")
            return []

    def update(self, collection_name: str, document_id: str, updates: Dict[str, Any]) -> bool:
        """Update specific fields in a document."""
        if not self.db:
            logger.error("Database not initialized")
            return False

        if not isinstance(updates, dict):
            logger.error("'updates' must be a dictionary.")
            return False

        try:
            updates_copy = updates.copy() # Avoid modifying the input dict
            updates_copy['updated_at'] = datetime.utcnow()

            doc_ref = self.db.collection(collection_name).document(document_id)
            doc_ref.update(updates_copy)
            return True
        except Exception as e:
            logger.error(f"Error updating document '{document_id}' in Firestore collection '{collection_name}': {e}")
            return False

    def update_if(self, collection_name: str, document_id: str, expected: Dict[str, Any], updates: Dict[str, Any]) -> bool:
        """
        Compare-and-set: apply `updates` only if every field in `expected` still holds,
        inside a Firestore transaction. Returns False when the precondition failed.
        """
        if not self.db:
            logger.error("Database not initialized")
            return False

        doc_ref = self.db.collection(collection_name).document(document_id)
        updates_copy = {**updates, 'updated_at': datetime.utcnow()}

        @firestore.transactional
        def _apply(transaction) -> bool:
            snapshot = doc_ref.get(transaction=transaction)
            if not snapshot.exists:
                return False
            current = snapshot.to_dict()
            if any(current.get(key) != value for key, value in expected.items()):
                return False
            transaction.update(doc_ref, updates_copy)
            return True

        try:
            return _apply(self.db.transaction())
        except Exception as e:
            logger.error(f"Error in conditional update of '{document_id}' in Firestore collection '{collection_name}': {e}")
            return False

    def delete(self, collection_name: str, document_id: str) -> bool:
        """Delete a document from Firestore."""
        if not self.db:
            logger.error("Database not initialized")
            return False

        try:
            self.db.collection(collection_name).document(document_id).delete()
            return True
        except Exception as e:
            logger.error(f"Error deleting document '{document_id}' from Firestore collection '{collection_name}': {e}")
            return False

def get_firestore_client():
    return FirebaseManager().get_db()

def get_firestore_ops_instance():
    return FirestoreBaseModel()
