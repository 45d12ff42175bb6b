"""
Notification service: Firebase Cloud Messaging push to users' devices.

Every function here is fire-and-forget. Routers schedule them as background
tasks after the transaction commits, and any failure is logged and dropped;
a push that cannot be delivered never affects the request it is about.

FCM setup:
  1. Download your Firebase service account JSON from:
     Firebase Console → Project Settings → Service Accounts → Generate new key
  2. Save it as firebase-credentials.json in the project root directory
  3. Set FCM_PROJECT_NUMBER in .env to match your Firebase project number
"""
import logging
import uuid
from pathlib import Path

from sqlalchemy import select

from marketplace.config import settings
from marketplace.database import AsyncSessionLocal
from marketplace.models.enums import ServiceKind
from marketplace.models.user import User
from marketplace.services import spatial_service

logger = logging.getLogger(__name__)

_FCM_CREDENTIALS_PATH = Path(__file__).parent.parent.parent / "firebase-credentials.json"
_firebase_app = None
_firebase_init_attempted = False

_KIND_LABELS = {
    ServiceKind.RIDE: "ride",
    ServiceKind.PARCEL: "delivery",
    ServiceKind.HOME_SERVICE: "service job",
}


def _get_firebase_app():
    """
    Lazily initialise Firebase Admin SDK on first use.
    Returns the app instance or None if credentials are missing or invalid.
    Initialization is attempted only once to avoid repeated failure logs.
    """
    global _firebase_app, _firebase_init_attempted
    if _firebase_init_attempted:
        return _firebase_app

    _firebase_init_attempted = True

    if not settings.FCM_PROJECT_NUMBER:
        return None

    if not _FCM_CREDENTIALS_PATH.exists():
        logger.info(
            "firebase-credentials.json not found at %s. Push notifications disabled.",
            _FCM_CREDENTIALS_PATH,
        )
        return None

    try:
        import firebase_admin
        from firebase_admin import credentials

        cred = credentials.Certificate(str(_FCM_CREDENTIALS_PATH))
        _firebase_app = firebase_admin.initialize_app(cred)
        logger.info(
            "Firebase Admin SDK initialised (project: %s)", settings.FCM_PROJECT_NUMBER
        )
    except Exception as exc:
        logger.warning("Firebase Admin SDK init failed (%s)", type(exc).__name__)
        _firebase_app = None

    return _firebase_app


def push_enabled() -> bool:
    return _get_firebase_app() is not None


async def _send_fcm_push(
    tokens: list[str],
    title: str,
    body: str,
    data: dict[str, str],
) -> int:
    """
    Send one notification to each device token. Returns how many were accepted.
    Silently skips if Firebase is not configured; per-token failures are logged.
    """
    if not tokens or _get_firebase_app() is None:
        return 0

    from firebase_admin import messaging

    sent = 0
    for token in tokens:
        try:
            message = messaging.Message(
                notification=messaging.Notification(title=title, body=body),
                data=data,  # FCM requires every value to be a str
                token=token,
            )
            response = messaging.send(message)
            sent += 1
            logger.debug("FCM sent: %s", response)
        except Exception as exc:
            logger.warning("FCM push failed (%s)", type(exc).__name__)
    return sent


async def _push_tokens_for(user_ids: list[uuid.UUID]) -> list[str]:
    async with AsyncSessionLocal() as session:
        rows = await session.execute(
            select(User.push_token).where(User.id.in_(user_ids), User.push_token.is_not(None))
        )
        return [token for (token,) in rows]


# ── Public notification functions ──────────────────────────────────────────


async def notify_new_request(
    request_id: uuid.UUID,
    kind: ServiceKind,
    owner_id: uuid.UUID,
    lat: float | None,
    lng: float | None,
) -> int:
    """Push a new request to online providers of the same kind nearby."""
    if not push_enabled():
        return 0
    if lat is None or lng is None:
        return 0

    try:
        async with AsyncSessionLocal() as session:
            nearby = await spatial_service.find_providers_near(
                session, kind, lat, lng, settings.NOTIFY_RADIUS_KM, exclude_user_id=owner_id
            )
        tokens = [user.push_token for user, _ in nearby if user.push_token]
        label = _KIND_LABELS[kind]
        return await _send_fcm_push(
            tokens,
            title=f"New {label} request nearby",
            body=f"A customer near you is looking for a {label}. Place your bid.",
            data={"type": "new_request", "request_id": str(request_id), "kind": kind.value},
        )
    except Exception as exc:
        logger.warning("New-request push for %s failed (%s)", request_id, type(exc).__name__)
        return 0


async def notify_new_bid(owner_id: uuid.UUID, request_id: uuid.UUID, bid_price: float) -> int:
    if not push_enabled():
        return 0
    try:
        return await _send_fcm_push(
            await _push_tokens_for([owner_id]),
            title="New bid received",
            body=f"A provider offered {bid_price:.2f} for your request.",
            data={"type": "new_bid", "request_id": str(request_id), "bid_price": str(bid_price)},
        )
    except Exception as exc:
        logger.warning("New-bid push for %s failed (%s)", request_id, type(exc).__name__)
        return 0


async def notify_bid_accepted(provider_id: uuid.UUID, request_id: uuid.UUID) -> int:
    if not push_enabled():
        return 0
    try:
        return await _send_fcm_push(
            await _push_tokens_for([provider_id]),
            title="Your bid was accepted",
            body="The customer accepted your offer. Head to the pickup point.",
            data={"type": "bid_accepted", "request_id": str(request_id)},
        )
    except Exception as exc:
        logger.warning("Bid-accepted push for %s failed (%s)", request_id, type(exc).__name__)
        return 0


async def notify_status_change(user_id: uuid.UUID, request_id: uuid.UUID, status: str) -> int:
    """Tell the other party that the request moved on."""
    if not push_enabled():
        return 0
    _STATUS_MESSAGES: dict[str, tuple[str, str]] = {
        "in_progress": ("Request started", "Your provider has started."),
        "completed": ("Request completed", "Thanks for using GoSafe. Don't forget to rate."),
        "cancelled": ("Request cancelled", "The request has been cancelled."),
    }
    title, body = _STATUS_MESSAGES.get(status, ("Request updated", f"Status: {status}."))
    try:
        return await _send_fcm_push(
            await _push_tokens_for([user_id]),
            title=title,
            body=body,
            data={"type": "status_change", "request_id": str(request_id), "status": status},
        )
    except Exception as exc:
        logger.warning("Status push for %s failed (%s)", request_id, type(exc).__name__)
        return 0
