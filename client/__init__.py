from .session_cache import ClientSessionCache, SessionEnvelope, InteractionSignal, STORAGE_KEY
from .api import LmsClient, LoginFailed, SessionExpired
