import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class IntentKind(str, Enum):
    WALLET = "wallet"  # Message contains a wallet address
    START_COMMAND = "start_command"  # /start
    VOICE_REQUEST = "voice_request"  # User wants to talk by voice
    VOICE_TROUBLESHOOTING = "voice_troubleshooting"  # Voice call link did not work
    AFFIRMATIVE = "affirmative"  # "yes" to a pending question
    NEGATIVE = "negative"  # "no" to a pending question
    BASIC_QUESTION = "basic_question"  # Everything else goes to the general backend


class ChainType(str, Enum):
    TON = "TON"
    ETH = "ETH"


@dataclass(frozen=True)
class Intent:
    kind: IntentKind
    text: str = ""
    address: Optional[str] = None
    chain_type: Optional[ChainType] = None


# Tested in this order; the first grammar that matches wins.
WALLET_ADDRESS_PATTERNS = (
    (ChainType.TON, re.compile(r"\b[A-Za-z0-9_-]{48}\b")),
    (ChainType.ETH, re.compile(r"\b0x[a-fA-F0-9]{40}\b")),
)

START_COMMAND = "/start"

VOICE_REQUEST_PHRASES = (
    "call me",
    "talk to me",
    "speak to me",
    "phone me",
    "ring me",
    "start a call",
    "start voice",
    "voice chat",
    "let's talk",
    "lets talk",
    "can we talk",
    "talk to someone",
    "talk to a human",
)

VOICE_TROUBLESHOOTING_PHRASES = (
    "call not working",
    "call is not working",
    "call doesn't work",
    "call didn't work",
    "call failed",
    "call dropped",
    "voice not working",
    "voice isn't working",
    "link not working",
    "link doesn't work",
    "link didn't work",
    "can't hear",
    "cannot hear",
    "no sound",
    "no audio",
    "mic not working",
    "microphone",
)

AFFIRMATIVE_WORDS = {
    "yes",
    "y",
    "yeah",
    "yep",
    "yup",
    "sure",
    "ok",
    "okay",
    "please",
    "go ahead",
    "do it",
    "absolutely",
    "of course",
    "let's go",
    "yes please",
    "👍",
    "✅",
}

NEGATIVE_WORDS = {
    "no",
    "n",
    "nope",
    "nah",
    "no thanks",
    "no thank you",
    "not now",
    "not interested",
    "skip",
    "later",
    "👎",
    "❌",
}


def normalize_for_matching(text: str) -> str:
    """Normalize text for matching short phrases (casefold + trim punctuation)."""
    if not text:
        return ""

    normalized = text.strip().casefold()
    normalized = re.sub(r"\s+", " ", normalized)
    # "yes!" -> "yes", "nope." -> "nope"
    normalized = re.sub(r"^[^\w]+|[^\w]+$", "", normalized)
    return normalized


def _exact_candidates(text: str) -> set[str]:
    # Emoji replies are all punctuation to the regex above, so keep the raw lowercase form too.
    lowered = re.sub(r"\s+", " ", text.strip().casefold())
    return {lowered, normalize_for_matching(text)} - {""}


def detect_wallet_address(text: str) -> Optional[tuple[ChainType, str]]:
    if not text:
        return None
    for chain_type, pattern in WALLET_ADDRESS_PATTERNS:
        match = pattern.search(text)
        if match:
            return chain_type, match.group(0)
    return None


def is_start_command(text: str) -> bool:
    return bool(text) and text.strip().casefold() == START_COMMAND


def is_voice_request(text: str) -> bool:
    lowered = (text or "").casefold()
    return any(phrase in lowered for phrase in VOICE_REQUEST_PHRASES)


def is_voice_troubleshooting(text: str) -> bool:
    lowered = (text or "").casefold()
    return any(phrase in lowered for phrase in VOICE_TROUBLESHOOTING_PHRASES)


def is_affirmative(text: str) -> bool:
    return bool(_exact_candidates(text or "") & AFFIRMATIVE_WORDS)


def is_negative(text: str) -> bool:
    return bool(_exact_candidates(text or "") & NEGATIVE_WORDS)


def classify(text: Optional[str]) -> Intent:
    """Classify an inbound message. Pure: same text, same intent."""
    raw = (text or "").strip()

    wallet = detect_wallet_address(raw)
    if wallet:
        chain_type, address = wallet
        return Intent(IntentKind.WALLET, text=raw, address=address, chain_type=chain_type)

    if is_start_command(raw):
        return Intent(IntentKind.START_COMMAND, text=raw)

    if is_voice_request(raw):
        return Intent(IntentKind.VOICE_REQUEST, text=raw)

    if is_voice_troubleshooting(raw):
        return Intent(IntentKind.VOICE_TROUBLESHOOTING, text=raw)

    if is_affirmative(raw):
        return Intent(IntentKind.AFFIRMATIVE, text=raw)

    if is_negative(raw):
        return Intent(IntentKind.NEGATIVE, text=raw)

    return Intent(IntentKind.BASIC_QUESTION, text=raw)
