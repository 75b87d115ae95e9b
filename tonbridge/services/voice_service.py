"""Voice session provider (Vapi web calls)."""

import time
from dataclasses import dataclass
from typing import Callable, Optional

from tonbridge.logging_config import get_logger

logger = get_logger("voice_service")

SESSION_MAX_AGE_SECONDS = 2 * 60 * 60


class VoiceSessionError(Exception):
    pass


@dataclass(frozen=True)
class VoiceSession:
    session_id: str
    join_url: str
    context: Optional[str] = None
    created_at: float = 0.0


class VoiceService:
    def __init__(
        self,
        assistant_id: Optional[str],
        web_call_url: Optional[str],
        clock: Callable[[], float] = time.time,
    ):
        self.assistant_id = assistant_id
        self.web_call_url = web_call_url
        self._clock = clock
        self._sessions: dict[str, VoiceSession] = {}

    def is_configured(self) -> bool:
        return bool(self.assistant_id and self.web_call_url)

    async def create_session(self, user_id: str, context_text: Optional[str] = None) -> VoiceSession:
        if not self.is_configured():
            raise VoiceSessionError("Voice configuration missing: VAPI_ASSISTANT_ID and VAPI_WEB_CALL_URL required")

        now = self._clock()
        session = VoiceSession(
            session_id=f"telegram-{user_id}-{int(now * 1000)}",
            join_url=self.web_call_url,
            context=context_text,
            created_at=now,
        )
        self._sessions[str(user_id)] = session

        logger.info(
            "Voice web call provided",
            extra={
                "context": {
                    "user_id": user_id,
                    "session_id": session.session_id,
                    "assistant_id": self.assistant_id,
                    "has_context": bool(context_text),
                }
            },
        )
        return session

    def get_session(self, user_id: str) -> Optional[VoiceSession]:
        return self._sessions.get(str(user_id))

    def cleanup_old_sessions(self) -> int:
        now = self._clock()
        stale = [key for key, session in self._sessions.items() if now - session.created_at > SESSION_MAX_AGE_SECONDS]
        for key in stale:
            del self._sessions[key]
        if stale:
            logger.debug("Cleaned up old voice sessions", extra={"context": {"removed": len(stale)}})
        return len(stale)


def format_voice_session_message(session: VoiceSession, has_wallet_context: bool) -> str:
    context_summary = "with your wallet context" if has_wallet_context else "for general crypto discussion"
    return (
        "🎙️ **Voice Call Ready!**\n\n"
        f"Your AI strategist is ready to talk {context_summary}.\n\n"
        "**Click to start voice conversation:**\n"
        f"{session.join_url}\n\n"
        "**What to expect:**\n"
        "• Natural voice conversation in your browser\n"
        "• No downloads or apps needed\n"
        "• Personalized crypto strategy advice\n\n"
        "*💡 Tip: Use headphones for best audio quality!*"
    )


VOICE_TROUBLESHOOTING_MESSAGE = (
    "📱 **Mobile Voice Call Troubleshooting**\n\n"
    "If the voice call didn't work on your phone, try:\n\n"
    "**Option 1: Switch Browser**\n"
    "• Copy the link and paste it in Chrome/Safari\n"
    "• Don't use Telegram's built-in browser\n\n"
    "**Option 2: Desktop Alternative**\n"
    "• Open the link on a computer instead\n\n"
    "**Still having issues?**\n"
    "• Check microphone permissions\n"
    "• Ensure a stable internet connection\n"
    "• Try incognito/private browsing mode\n\n"
    '*Type "call me" to get a fresh voice link.*'
)
