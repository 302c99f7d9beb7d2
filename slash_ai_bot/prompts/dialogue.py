from __future__ import annotations

from typing import Dict, List

BASE_SYSTEM_PROMPT = (
    "You are a helpful AI assistant inside a Discord server. "
    "Answer clearly, keep the conversation context in mind and use Discord markdown when it helps."
)

PERSONALITY_HINTS: Dict[str, str] = {
    "helpful": "Be friendly, patient and focused on solving the user's problem.",
    "professional": "Keep a precise, formal and businesslike tone.",
    "casual": "Talk like a relaxed friend; light slang is fine.",
    "sarcastic": "Use dry, playful sarcasm while still giving a correct answer.",
    "enthusiastic": "Be upbeat and energetic.",
}

LENGTH_HINTS: Dict[str, str] = {
    "short": "Keep answers to one or two short sentences unless asked for more.",
    "medium": "Keep answers to a few focused paragraphs at most.",
    "long": "Give thorough, detailed answers with examples where useful.",
}


def build_system_prompt(personality: str | None = None, length: str | None = None) -> str:
    lines = [BASE_SYSTEM_PROMPT]
    if personality:
        key = personality.strip().lower()
        lines.append(PERSONALITY_HINTS.get(key, f"Personality: {personality.strip()}."))
    if length:
        hint = LENGTH_HINTS.get(length.strip().lower())
        if hint:
            lines.append(hint)
    return "\n".join(lines)


def build_generation_messages(
    prompt: str,
    history: List[Dict[str, str]],
    personality: str | None = None,
    length: str | None = None,
) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": build_system_prompt(personality, length)}]
    for turn in history:
        role = str(turn.get("role", "")).strip().lower()
        content = str(turn.get("content", "")).strip()
        if role not in {"user", "assistant"} or not content:
            continue
        messages.append({"role": role, "content": content})
    messages.append({"role": "user", "content": prompt})
    return messages
