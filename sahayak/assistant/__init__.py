"""
Conversational assistant for senior citizens

This package provides the Sahayak assistant:

- Modes: information, religious, wellness and ordering conversations, each
  with its own prompt framing and history
- LLM access: Gemini generateContent (or an OpenAI-compatible chat endpoint)
- Speech: Wyoming protocol (Whisper STT, Piper TTS) behind a callback bridge
- Accessibility: persisted font size, high contrast and last-used mode
- Emergency: contact list, location-enriched alert text and dispatch links

Key modules:
- config: Configuration management from environment variables
- conversation: Conversation state and the turn orchestrator
- prompts: Prompt composition per mode
- speech: Speech capture/playback bridge
- emergency: Emergency contact flow
- view: Render sinks (console, MQTT)
"""

from __future__ import annotations

__all__ = [
    "config",
    "conversation",
    "dispatch",
    "emergency",
    "llm",
    "modes",
    "mqtt",
    "preference_manager",
    "prompts",
    "speech",
    "view",
]
