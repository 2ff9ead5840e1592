"""Voice I/O bridge to the kiosk page."""

from docent.interface.voice.channel import BrowserVoiceChannel, VoiceChannel

__all__ = ["BrowserVoiceChannel", "VoiceChannel"]
