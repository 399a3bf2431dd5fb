from .api_client import ApiClient, ApiError, TokenStore
from .config import TerminalConfig
from .terminal import PosTerminal, TerminalError

__all__ = [
    'ApiClient', 'ApiError', 'TokenStore',
    'TerminalConfig',
    'PosTerminal', 'TerminalError',
]
