from dataclasses import fields
from typing import Optional

from mili_llama.constants import ACTIVATION_CODES, USERS_COLLECTION
from mili_llama.helper.record_mapping_helper import as_bool
from mili_llama.models.model import UserSettings
from mili_llama.services.backend import Backend
from mili_llama.utils.logging_config import get_auth_logger

logger = get_auth_logger()

UNAUTHORIZED_CODE_MESSAGE = "A non-authorized code was entered."


def complete_activation(session: UserSettings, code: str) -> Optional[str]:
    """
    Check an activation code against the allow list.

    Codes compare exactly, case included. A match marks the session logged
    in, existing and verified and returns None; anything else leaves the
    session untouched and returns the message to show.
    """
    if code not in ACTIVATION_CODES:
        logger.warning(f"ACTIVATION | User: {session.uid or '<anonymous>'} | rejected")
        return UNAUTHORIZED_CODE_MESSAGE

    session.is_logged_in = True
    session.account_exists = True
    session.verified = True
    logger.info(f"ACTIVATION | User: {session.uid or '<anonymous>'} | verified")
    return None


class SessionService:

    def __init__(self, backend: Backend, session: Optional[UserSettings] = None):
        self.backend = backend
        self.session = session or UserSettings()

    def activate(self, code: str) -> Optional[str]:
        return complete_activation(self.session, code)

    def sign_in(self, email: str, password: str) -> str:
        uid = self.backend.identity.sign_in_with_password(email, password)
        self.session.uid = uid
        self.session.email_address = email
        self.session.account_exists = True
        return uid

    def sign_in_with_google(self, id_token: str) -> str:
        uid = self.backend.identity.sign_in_with_federated_credential(id_token)
        self.session.uid = uid
        self.session.account_exists = True
        return uid

    def sign_out(self) -> None:
        self.backend.identity.sign_out()
        self.session.is_logged_in = False
        self.session.verified = False

    def delete_account(self) -> None:
        self.backend.identity.delete_current_user()
        logger.info(f"Account {self.session.uid} deleted")
        blank = UserSettings()
        for settings_field in fields(UserSettings):
            setattr(self.session, settings_field.name, getattr(blank, settings_field.name))

    def is_admin(self) -> bool:
        uid = self.backend.identity.current_user_id()
        if not uid:
            return False
        document = self.backend.documents.get(USERS_COLLECTION, uid)
        return as_bool(document.data.get("isAdmin")) if document else False
