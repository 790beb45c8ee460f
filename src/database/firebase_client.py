"""
Firebase Database Client Module

Thin synchronous wrapper over the Firestore client from firebase-admin.
Transport failures are translated into the data service error taxonomy; the
async data service runs these calls in a worker thread.
"""

import os
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from src.errors import NotFoundError, TransientBackendError

# Configure logging
logger = logging.getLogger(__name__)

# Firestore rejects write batches larger than this
BATCH_LIMIT = 500


@contextmanager
def _firestore_errors(action: str) -> Iterator[None]:
    """Translate google-api-core failures raised inside the block."""
    try:
        yield
    except google_exceptions.NotFound as e:
        raise NotFoundError("document", str(e)) from e
    except (google_exceptions.GoogleAPICallError, google_exceptions.RetryError) as e:
        logger.error(f"Firestore error while {action}: {e}")
        raise TransientBackendError(f"Firestore error while {action}: {e}") from e


class FirebaseClient:
    """Firestore access for the invoice collections."""

    def __init__(self,
                 credentials_path: Optional[str] = None,
                 project_id: Optional[str] = None,
                 app: Optional[firebase_admin.App] = None):
        """Initialize the Firebase app (or reuse an existing one) and the Firestore client.

        Args:
            credentials_path: Path to a service account JSON file (optional)
            project_id: Optional project ID to override the credentials' project
            app: Already-initialized app to use instead of the default one

        Raises:
            TransientBackendError: If Firebase cannot be initialized
        """
        try:
            self._app = app or self._initialize_app(credentials_path, project_id)
            self._db = firestore.client(app=self._app)
        except (ValueError, google_exceptions.GoogleAPICallError) as e:
            logger.error(f"Firebase initialization failed: {e}")
            raise TransientBackendError(f"Could not connect to Firebase: {e}") from e

        logger.info(f"Connected to Firestore using app '{self._app.name}'")

    def _initialize_app(self, credentials_path: Optional[str], project_id: Optional[str]) -> firebase_admin.App:
        try:
            existing_app = firebase_admin.get_app()
            logger.info(f"Using existing Firebase app: {existing_app.name}")
            return existing_app
        except ValueError:
            # No existing app, proceed with initialization
            pass

        creds = self._load_credentials(credentials_path)
        options = {}
        if project_id:
            options['projectId'] = project_id
        elif creds is not None and getattr(creds, 'project_id', None):
            logger.info(f"Using project ID from credentials: {creds.project_id}")
            options['projectId'] = creds.project_id

        if creds is not None:
            return firebase_admin.initialize_app(creds, options or None)
        # Application default credentials
        return firebase_admin.initialize_app(options=options or None)

    def _load_credentials(self, credentials_path: Optional[str] = None):
        """
        Load service account credentials from an explicit path, the
        FIREBASE_CREDENTIALS / GOOGLE_APPLICATION_CREDENTIALS variables, or the
        project's config/firebase directory.

        Returns:
            Firebase credentials object or None for application default credentials
        """
        project_root = Path(__file__).resolve().parent.parent.parent
        candidates = [
            ("argument", credentials_path),
            ("FIREBASE_CREDENTIALS", os.environ.get('FIREBASE_CREDENTIALS')),
            ("GOOGLE_APPLICATION_CREDENTIALS", os.environ.get('GOOGLE_APPLICATION_CREDENTIALS')),
            ("default path", str(project_root / "config" / "firebase" / "service-account.json")),
        ]

        for source, path in candidates:
            if not path or not os.path.isfile(path):
                continue
            logger.info(f"Loading Firebase credentials from {source}: {path}")
            creds = credentials.Certificate(path)
            if not getattr(creds, 'project_id', None):
                raise ValueError(f"Invalid credentials at {path}: missing project_id")
            return creds

        logger.info("No service account file found, using application default credentials")
        return None

    def _build_query(self, collection: str, filters: Optional[List[Dict]] = None):
        query = self._db.collection(collection)
        for filter_dict in filters or []:
            field = filter_dict.get("field")
            op = filter_dict.get("op", "==")
            value = filter_dict.get("value")
            query = query.where(filter=FieldFilter(field, op, value))
        return query

    @staticmethod
    def _to_record(doc) -> Dict[str, Any]:
        return (doc.to_dict() or {}) | {"id": doc.id}

    def get_document(self, doc_id: str, collection: str) -> Optional[Dict]:
        """Get a document by ID.

        Returns:
            Document data with its id, or None if not found
        """
        with _firestore_errors(f"reading {collection}/{doc_id}"):
            doc = self._db.collection(collection).document(doc_id).get()
            if doc.exists:
                return self._to_record(doc)
            return None

    def get_documents(self, collection: str,
                      filters: Optional[List[Dict]] = None,
                      limit: Optional[int] = None) -> List[Dict]:
        """Get documents matching filters.

        Args:
            collection: Collection name
            filters: List of filter dictionaries with field, op, value
            limit: Maximum number of documents to return

        Returns:
            List of document dictionaries
        """
        with _firestore_errors(f"querying {collection}"):
            query = self._build_query(collection, filters)
            if limit:
                query = query.limit(limit)
            return [self._to_record(doc) for doc in query.stream()]

    def new_document_id(self, collection: str) -> str:
        """Reserve an auto-generated document id without writing."""
        return self._db.collection(collection).document().id

    def set_document(self, doc_id: str, data: Dict, collection: str, merge: bool = False) -> None:
        with _firestore_errors(f"writing {collection}/{doc_id}"):
            self._db.collection(collection).document(doc_id).set(data, merge=merge)

    def delete_document(self, doc_id: str, collection: str) -> None:
        """Delete a document by ID. Firestore treats deleting a missing document as success."""
        with _firestore_errors(f"deleting {collection}/{doc_id}"):
            self._db.collection(collection).document(doc_id).delete()

    def batch_write(self, operations: List[Dict], collection: str) -> int:
        """Perform batch operations, committing in chunks of BATCH_LIMIT.

        Args:
            operations: List of operation dictionaries {op, doc_id, data}
                where op is one of 'set', 'update', 'delete'
            collection: Collection name

        Returns:
            Number of operations written
        """
        if not operations:
            return 0

        count = 0
        with _firestore_errors(f"batch writing {collection}"):
            for start in range(0, len(operations), BATCH_LIMIT):
                batch = self._db.batch()
                for op in operations[start:start + BATCH_LIMIT]:
                    doc_ref = self._db.collection(collection).document(op["doc_id"])
                    operation = op.get("op", "set")
                    if operation == "set":
                        batch.set(doc_ref, op["data"], merge=op.get("merge", False))
                    elif operation == "update":
                        batch.update(doc_ref, op["data"])
                    elif operation == "delete":
                        batch.delete(doc_ref)
                    else:
                        raise ValueError(f"Unknown batch operation: {operation}")
                    count += 1
                batch.commit()
        logger.debug(f"Committed {count} batched operations to {collection}")
        return count

    def watch_query(self, collection: str, filters: Optional[List[Dict]],
                    on_documents: Callable[[List[Dict]], None]) -> Callable[[], None]:
        """Start a realtime listener on a query.

        on_documents runs on Firestore's watch thread with the full result set
        each time it changes.

        on_snapshot takes no error callback. Only a failure to start the
        watch is raised here; a stream that dies later stops delivering
        without notice, and callers recover with a fresh query.

        Returns:
            A function that stops the listener
        """
        query = self._build_query(collection, filters)

        def handle_snapshot(docs, changes, read_time):
            on_documents([self._to_record(doc) for doc in docs])

        with _firestore_errors(f"watching {collection}"):
            watch = query.on_snapshot(handle_snapshot)
        logger.debug(f"Started watch on {collection} with {len(filters or [])} filters")
        return watch.unsubscribe

    @property
    def db(self) -> firestore.Client:
        """Access to raw Firestore client for advanced operations."""
        return self._db
