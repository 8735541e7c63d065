"""Conversational finance and nutrition coach backed by Gemini."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

from .errors import CoachError

if TYPE_CHECKING:
    from .models import ChatMessage, Receipt, UserProfile

_FALLBACK_REPLY = "I'm sorry, I couldn't process that."

_SYSTEM_INSTRUCTION = """\
You are a personal finance and nutrition assistant.
You have access to the user's receipt history and profile.

# History Context
{history}

# User Profile
{profile}

# Rules
- Be concise and actionable.
- If asked for recipes, suggest them based on items actually found in history.
- If asked about spending, calculate totals from the history provided.
- Maintain a supportive, coaching tone.
"""


def build_system_instruction(history: list[Receipt], profile: UserProfile) -> str:
    summary = [
        {
            "date": r.meta.date,
            "store": r.meta.store,
            "total": r.meta.total_spent,
            "items": [i.name_clean for i in r.items],
        }
        for r in history
    ]
    return _SYSTEM_INSTRUCTION.format(
        history=json.dumps(summary, ensure_ascii=False, indent=2),
        profile=json.dumps(profile.to_dict(), ensure_ascii=False, indent=2),
    )


class GeminiCoach:
    """Answers free-form questions with the receipt history as context."""

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash") -> None:
        self._api_key = api_key
        self._model = model

    async def reply(
        self,
        message: str,
        history: list[Receipt],
        profile: UserProfile,
        chat_log: list[ChatMessage],
    ) -> str:
        """Return the coach's answer to ``message``.

        Raises:
            CoachError: If the model call fails.
        """
        if not self._api_key:
            raise ValueError(
                "Gemini API key is not set. "
                "Check the config file or the GEMINI_API_KEY environment variable."
            )

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: pip install google-generativeai"
            ) from None

        genai.configure(api_key=self._api_key)
        model = genai.GenerativeModel(
            self._model,
            system_instruction=build_system_instruction(history, profile),
        )
        chat = model.start_chat(
            history=[{"role": m.role, "parts": [m.text]} for m in chat_log]
        )
        try:
            response = await chat.send_message_async(message)
            text = response.text
        except Exception as e:
            raise CoachError(f"Coach request failed: {e}") from e
        return text or _FALLBACK_REPLY
