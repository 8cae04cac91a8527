from jobportal.backend.base import Backend
from jobportal.backend.rest import RestBackend
from jobportal.config import ClientConfig
from jobportal.log import get_logger
from jobportal.storage import CredentialStore

log = get_logger(__name__)

__all__ = ["Backend", "RestBackend", "get_backend"]


def get_backend(config: ClientConfig, credentials: CredentialStore) -> Backend:
    log.debug("Using REST backend at %s", config.api_url)
    return RestBackend(config, credentials)
