"""
Custom exceptions

All business errors live here so the API layer can translate them in one
place. Every class carries a stable `code` that is sent to clients.
"""


class MatchServiceException(Exception):
    """Base class for all match service errors"""
    code = "INTERNAL"


# ============ Match errors ============

class MatchNotFound(MatchServiceException):
    """Referenced match does not exist"""
    code = "NOT_FOUND"

    def __init__(self, match_id):
        self.match_id = match_id
        super().__init__(f"Match {match_id} not found")


class MatchFull(MatchServiceException):
    """Slot B is already bound to another participant"""
    code = "MATCH_FULL"

    def __init__(self, match_id):
        self.match_id = match_id
        super().__init__(f"Match {match_id} is already full")


class MatchNotActive(MatchServiceException):
    """Match is FINISHED and no longer accepts moves or new participants"""
    code = "MATCH_NOT_ACTIVE"

    def __init__(self, match_id):
        self.match_id = match_id
        super().__init__(f"Match {match_id} is finished")


# ============ Participant errors ============

class InvalidParticipant(MatchServiceException):
    """Identifier is bound to neither slot of the match"""
    code = "INVALID_PARTICIPANT"

    def __init__(self, match_id, participant_id):
        self.match_id = match_id
        self.participant_id = participant_id
        super().__init__(f"Participant {participant_id} is not part of match {match_id}")


# ============ State transition errors ============

class InvalidStateTransition(MatchServiceException):
    """Illegal status transition"""
    code = "INVALID_STATE_TRANSITION"


# ============ Infrastructure errors ============

class StorageFailure(MatchServiceException):
    """Record store unavailable, or write conflicts exhausted the retries"""
    code = "STORAGE_FAILURE"


class ConnectionFailure(MatchServiceException):
    """Notification channel dropped the subscriber; resubscribe and re-fetch"""
    code = "CONNECTION_FAILURE"
