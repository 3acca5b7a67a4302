"""
Darija Tutor.

Conversational Moroccan Darija practice: send text or speech to a tutoring
model and get transcription, translation, grammar notes and vocabulary back.
"""

__version__ = "0.1.0"
