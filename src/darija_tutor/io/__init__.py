"""
I/O module for user interaction.

Provides the terminal chat interface.
"""
