from dataclasses import dataclass
from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    CONFIGURATION = "configuration"  # Endpoint URL missing, operator must fix
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"  # Refused or unknown host
    SERVER_ERROR = "server_error"  # Backend 5xx
    RATE_LIMITED = "rate_limited"  # Backend 429
    BAD_REQUEST = "bad_request"  # Backend 400, payload bug on our side
    UNKNOWN = "unknown"


FAILURE_MESSAGES: dict[FailureKind, str] = {
    FailureKind.CONFIGURATION: "I'm not properly configured yet. Please check back soon!",
    FailureKind.TIMEOUT: "Request took too long, please try again",
    FailureKind.CONNECTION_REFUSED: "I can't reach my AI brain right now. Please try again later.",
    FailureKind.SERVER_ERROR: "I'm having trouble thinking right now, try again in a moment",
    FailureKind.RATE_LIMITED: "I'm receiving too many requests right now, please try again later",
    FailureKind.BAD_REQUEST: "I couldn't process that request properly",
    FailureKind.UNKNOWN: "An error occurred processing your request. Please try again.",
}


def user_message_for(kind: FailureKind) -> str:
    return FAILURE_MESSAGES[kind]


@dataclass(frozen=True)
class DispatchOutcome:
    ok: bool
    text: Optional[str] = None
    kind: Optional[FailureKind] = None
    user_message: Optional[str] = None

    @staticmethod
    def success(text: str) -> "DispatchOutcome":
        return DispatchOutcome(ok=True, text=text)

    @staticmethod
    def failure(kind: FailureKind) -> "DispatchOutcome":
        return DispatchOutcome(ok=False, kind=kind, user_message=user_message_for(kind))

    @property
    def display_text(self) -> str:
        """Text to show the user: backend output on success, the safe message otherwise."""
        if self.ok:
            return self.text or ""
        return self.user_message or user_message_for(FailureKind.UNKNOWN)
