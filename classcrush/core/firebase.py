import firebase_admin
from firebase_admin import auth, credentials, db
from firebase_admin.exceptions import FirebaseError
from fastapi.concurrency import run_in_threadpool
from typing import Any, Callable, Dict, Optional
import structlog

from classcrush.config import settings
from classcrush.core.errors import Unavailable
from classcrush.db.store import RecordStore, Subscription, split_path


logger = structlog.get_logger(__name__)

# Global Firebase app instance
firebase_app: Optional[firebase_admin.App] = None


def init_firebase() -> Optional[firebase_admin.App]:
    """Initialize Firebase Admin SDK."""
    global firebase_app

    if firebase_app is not None:
        return firebase_app

    # Check if Firebase credentials are configured
    if not settings.FIREBASE_PROJECT_ID or not settings.FIREBASE_CLIENT_EMAIL:
        logger.warning("firebase_not_configured")
        return None

    # Create credentials from environment variables
    cred_dict = {
        "type": "service_account",
        "project_id": settings.FIREBASE_PROJECT_ID,
        "private_key": settings.FIREBASE_PRIVATE_KEY.replace("\\n", "\n"),
        "client_email": settings.FIREBASE_CLIENT_EMAIL,
        "token_uri": "https://oauth2.googleapis.com/token",
    }

    try:
        cred = credentials.Certificate(cred_dict)
        firebase_app = firebase_admin.initialize_app(
            cred, {"databaseURL": settings.firebase_database_url}
        )
        logger.info("firebase_initialized", project_id=settings.FIREBASE_PROJECT_ID)
        return firebase_app
    except (ValueError, FirebaseError) as e:
        logger.error("firebase_initialization_failed", error=str(e))
        return None


async def _call(operation: str, key: str, fn: Callable[[], Any]) -> Any:
    """Run a blocking SDK call off the event loop, mapping SDK failures."""
    try:
        return await run_in_threadpool(fn)
    except FirebaseError as e:
        logger.warning("firebase_call_failed", operation=operation, key=key, error=str(e))
        raise Unavailable(
            f"Database {operation} failed for '{key}': {e}", detail={"key": key}
        ) from e


class FirebaseRecordStore(RecordStore):
    """
    Record Store backed by Firebase Realtime Database.
    Uses the Admin SDK, so security rules do not apply to these writes.
    """

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self.app = app

    def _ref(self, key: str) -> db.Reference:
        return db.reference("/" + "/".join(split_path(key)), app=self.app)

    async def get_or_none(self, key: str) -> Any:
        return await _call("get", key, lambda: self._ref(key).get())

    async def set(self, key: str, value: Any) -> None:
        if value is None:
            await _call("delete", key, lambda: self._ref(key).delete())
            return
        await _call("set", key, lambda: self._ref(key).set(value))

    async def update_fields(self, key: str, fields: Dict[str, Any]) -> None:
        # Multi-path update: every field lands in the same atomic write.
        await _call("update", key, lambda: self._ref(key).update(dict(fields)))

    async def push(self, collection_key: str, value: Any) -> str:
        new_ref = await _call("push", collection_key, lambda: self._ref(collection_key).push(value))
        return new_ref.key

    async def subscribe(self, key: str) -> Subscription:
        """
        Listen on ``key``. The SDK delivers deltas on a background thread;
        each one triggers a full re-read so subscribers always see snapshots.
        """
        subscription = Subscription(key)
        ref = self._ref(key)

        def on_event(event: db.Event) -> None:
            try:
                subscription.deliver(ref.get())
            except FirebaseError as e:
                logger.warning("firebase_listener_read_failed", key=key, error=str(e))

        registration = await _call("listen", key, lambda: ref.listen(on_event))
        subscription.bind_close(registration.close)
        return subscription

    async def query_by_field(
        self, collection_key: str, field: str, equals: Any
    ) -> Dict[str, Any]:
        result = await _call(
            "query",
            collection_key,
            lambda: self._ref(collection_key).order_by_child(field).equal_to(equals).get(),
        )
        return dict(result or {})

    async def create_if_absent(self, key: str, value: Any) -> bool:
        created = {"value": False}

        def claim(current: Any) -> Any:
            if current is None:
                created["value"] = True
                return value
            created["value"] = False
            return current

        # TransactionAbortedError is a FirebaseError, so _call maps it to Unavailable.
        await _call("transaction", key, lambda: self._ref(key).transaction(claim))
        return created["value"]


class FirebaseIdentityProvider:
    """Identity collaborator backed by Firebase Authentication."""

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self.app = app

    async def current_user_id(self, id_token: str) -> Optional[str]:
        """uid of a valid ID token, or None."""
        if not id_token:
            return None
        try:
            claims = await run_in_threadpool(auth.verify_id_token, id_token, self.app)
        except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError, auth.RevokedIdTokenError) as e:
            logger.info("id_token_rejected", error=str(e))
            return None
        except FirebaseError as e:
            raise Unavailable(f"Token verification failed: {e}") from e
        return claims.get("uid")

    async def display_name(self, user_id: str) -> str:
        try:
            record = await run_in_threadpool(auth.get_user, user_id, self.app)
        except auth.UserNotFoundError:
            return "Unknown User"
        except FirebaseError as e:
            raise Unavailable(f"User lookup failed: {e}") from e
        return record.display_name or "Unknown User"
