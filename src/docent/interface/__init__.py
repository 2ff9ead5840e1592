"""Kiosk interface layer.

Provides the WebSocket bridge to the kiosk page, the per-connection
session wiring and the browser voice channel.

Data flow::

    Kiosk page (camera model, Web Speech) ⇄ /ws
      → KioskSession → PresenceEstimator / BrowserVoiceChannel
      → InteractionOrchestrator → AnswerResolver
      → speak / listen commands → Kiosk page
"""
