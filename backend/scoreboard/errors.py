"""Domain errors raised by the round service and rendered by the API."""


class ScoreboardError(Exception):
    """Base error with an HTTP status and a message fit for the operator."""
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'error': self.message}


class SessionNotFound(ScoreboardError):
    status_code = 404

    def __init__(self, room_code):
        super().__init__(f"Session {room_code} not found")


class PlayerNotFound(ScoreboardError):
    status_code = 404

    def __init__(self, player_id):
        super().__init__(f"Player {player_id} not found in this session")


class DuplicatePlayerName(ScoreboardError):
    status_code = 409

    def __init__(self, name):
        super().__init__('Player name already exists!')
        self.name = name


class FieldOccupied(ScoreboardError):
    status_code = 409

    def __init__(self, field_number):
        super().__init__(f"Field {field_number} already has a player")


class InvalidState(ScoreboardError):
    status_code = 400


class AlreadyFinished(ScoreboardError):
    status_code = 409

    def __init__(self, name):
        super().__init__(f"{name} already has a result for this round")


class StaleUpdate(ScoreboardError):
    status_code = 409

    def __init__(self, incoming, held):
        super().__init__(f"Timer update {incoming} is not newer than {held}")
        self.incoming = incoming
        self.held = held

    def to_dict(self):
        return {'error': self.message, 'stale': True, 'updated_at': self.held}


class StoreUnavailable(ScoreboardError):
    status_code = 503

    def __init__(self, operation):
        super().__init__(f"Database unavailable during {operation}; running offline")

    def to_dict(self):
        return {'error': self.message, 'offline': True}
