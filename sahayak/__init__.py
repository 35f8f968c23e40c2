"""
Sahayak - voice assistant for senior citizens

Root package for Sahayak. It holds shared helpers and the assistant itself:
a conversational front-end with four modes (information, religious, wellness,
ordering), speech input/output over Wyoming STT/TTS servers, accessibility
preferences, and an emergency-contact dialer.

Core modules:
- utils: Environment parsing and small async/byte helpers
- preference_store: Debounced persistence of user preferences
- location: Best-effort device location for emergency alerts
- assistant: Conversation orchestration, LLM access, speech and emergency flow
"""

__version__ = "0.4.2"
