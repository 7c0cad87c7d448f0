"""FaceGuard client - resilient access layer for the face recognition service"""

__version__ = "1.0.0"
