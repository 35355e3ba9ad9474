from __future__ import annotations


class SessionError(Exception):
    """Base class for errors that terminate a recognition session."""


class InvalidConfig(SessionError):
    pass


class UnexpectedConfig(SessionError):
    pass


class InvalidAudioChunk(SessionError):
    pass


class InvalidLedgerUpdate(SessionError):
    pass


class IllegalEventSequence(SessionError):
    pass


class SessionCancelled(SessionError):
    pass


class RecognitionError(SessionError):
    pass
