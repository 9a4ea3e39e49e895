"""
Push Gateway

Multicast push delivery to device tokens.

- LoggingPushGateway: default, logs what would be sent (development)
- FirebasePushGateway: Firebase Cloud Messaging via firebase-admin.
  The library is imported lazily and only when PUSH_GATEWAY=firebase.
  Install: pip install "po-workflow[push]"
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from po_workflow.exceptions import PushGatewayUnavailable
from po_workflow.logging_config import get_logger

logger = get_logger(__name__)

# Error codes after which a token will never work again
INVALID_TOKEN_CODES = (
    "registration-token-not-registered",
    "invalid-argument",
    "invalid-registration-token",
)


@dataclass
class PushMessage:
    title: str
    body: Optional[str] = None
    # FCM data payloads only carry string values
    data: Dict[str, str] = field(default_factory=dict)


@dataclass
class PushResult:
    token: str
    success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def token_invalid(self) -> bool:
        if self.success or not self.error_code:
            return False
        return any(code in self.error_code for code in INVALID_TOKEN_CODES)


class PushGateway(Protocol):
    name: str

    def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> List[PushResult]:
        ...


class LoggingPushGateway:
    """Logs pushes instead of sending them."""

    name = "log"

    def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> List[PushResult]:
        logger.info(
            f"Push (not sent): {message.title}",
            extra={"token_count": len(tokens), "push_body": message.body, "push_data": message.data},
        )
        return [PushResult(token=token, success=True) for token in tokens]


def _import_firebase():
    try:
        import firebase_admin  # type: ignore
        from firebase_admin import credentials, messaging  # type: ignore
        return firebase_admin, credentials, messaging
    except Exception as e:
        raise PushGatewayUnavailable(
            "firebase-admin not installed. Install: pip install firebase-admin"
        ) from e


class FirebasePushGateway:
    """Firebase Cloud Messaging multicast."""

    name = "firebase"
    APP_NAME = "po_workflow"

    def __init__(self, credentials_file: Optional[str] = None):
        firebase_admin, credentials, messaging = _import_firebase()
        self._messaging = messaging
        try:
            self._app = firebase_admin.get_app(self.APP_NAME)
        except ValueError:
            cred = (
                credentials.Certificate(credentials_file)
                if credentials_file
                else credentials.ApplicationDefault()
            )
            try:
                self._app = firebase_admin.initialize_app(cred, name=self.APP_NAME)
            except Exception as e:
                raise PushGatewayUnavailable(f"Firebase initialization failed: {e}") from e

    def _error_code(self, exc: Exception) -> str:
        if isinstance(exc, self._messaging.UnregisteredError):
            return "registration-token-not-registered"
        code = getattr(exc, "code", None) or type(exc).__name__
        return str(code).lower().replace("_", "-")

    def send_multicast(self, tokens: Sequence[str], message: PushMessage) -> List[PushResult]:
        tokens = list(tokens)
        multicast = self._messaging.MulticastMessage(
            tokens=tokens,
            notification=self._messaging.Notification(title=message.title, body=message.body or None),
            data=message.data or None,
        )
        response = self._messaging.send_each_for_multicast(multicast, app=self._app)

        results = []
        for token, resp in zip(tokens, response.responses):
            if resp.success:
                results.append(PushResult(token=token, success=True))
            else:
                results.append(PushResult(
                    token=token,
                    success=False,
                    error_code=self._error_code(resp.exception),
                    error_message=str(resp.exception),
                ))
        logger.info(
            f"FCM multicast: {response.success_count} sent, {response.failure_count} failed",
            extra={"token_count": len(tokens)},
        )
        return results


def create_push_gateway(kind: str, credentials_file: Optional[str] = None) -> PushGateway:
    """Build the push gateway named by PUSH_GATEWAY."""
    if kind == "log":
        return LoggingPushGateway()
    if kind == "firebase":
        return FirebasePushGateway(credentials_file)
    raise PushGatewayUnavailable(f"Unknown push gateway '{kind}'")
