"""
Live Recognition - Face Enrollment and Real-Time Recognition

Enroll named faces from a live camera and recognize them in the same feed.
Runs locally; nothing is persisted between sessions.
"""

__version__ = "1.0.0"
