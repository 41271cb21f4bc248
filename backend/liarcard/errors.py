"""Typed failures raised by the game services.

Routes and socket handlers translate these into JSON payloads; the services
themselves never render responses.
"""


class GameError(Exception):
    status_code = 400
    code = 'game_error'

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or self.__class__.__doc__ or self.code

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


class NotFound(GameError):
    """Game or player not found"""
    status_code = 404
    code = 'not_found'


class GameAlreadyStarted(GameError):
    """This game is not in the lobby"""
    status_code = 409
    code = 'game_already_started'


class GameFull(GameError):
    """This game is full"""
    status_code = 409
    code = 'game_full'


class InsufficientPlayers(GameError):
    """Not enough players to start a round"""
    status_code = 400
    code = 'insufficient_players'


class Unauthorized(GameError):
    """Only the game admin may do this"""
    status_code = 403
    code = 'unauthorized'


class InvalidOrder(GameError):
    """Player order must list every player exactly once"""
    status_code = 400
    code = 'invalid_order'


class InvalidPhase(GameError):
    """Not allowed in the current phase"""
    status_code = 409
    code = 'invalid_phase'


class InvalidVote(GameError):
    """Invalid vote"""
    status_code = 400
    code = 'invalid_vote'


class InvalidSelection(GameError):
    """That word or category is not on offer"""
    status_code = 400
    code = 'invalid_selection'


class StoreWriteError(GameError):
    """Could not save game state"""
    status_code = 503
    code = 'store_write_error'
