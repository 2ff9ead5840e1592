"""Docent: exhibition kiosk that greets approaching visitors and answers questions.

Data flow::

    Camera → detector → PresenceEstimator ─┐
                                            ├→ InteractionOrchestrator → AnswerResolver
    Microphone → kiosk recognizer ──────────┘            │
                                                         └→ kiosk synthesizer → Speaker
"""

__version__ = "0.2.0"
