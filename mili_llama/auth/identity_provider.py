from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, List, Optional

import requests

from mili_llama.errors import IdentityProviderError
from mili_llama.utils.logging_config import get_auth_logger

logger = get_auth_logger()

IDENTITY_TOOLKIT_BASE = "https://identitytoolkit.googleapis.com/v1"
GOOGLE_PROVIDER_ID = "google.com"

AuthStateListener = Callable[[Optional[str]], None]


@dataclass
class AuthSession:
    uid: str
    email: str = ""
    id_token: str = ""
    refresh_token: str = ""

    @classmethod
    def from_json(cls, payload: dict) -> "AuthSession":
        return cls(
            uid=payload.get("localId", ""),
            email=payload.get("email", ""),
            id_token=payload.get("idToken", ""),
            refresh_token=payload.get("refreshToken", ""),
        )


class IdentityProvider(ABC):
    """Sign-in state for the device's single signed in user."""

    def __init__(self):
        self._listeners: List[AuthStateListener] = []

    def add_auth_state_listener(self, listener: AuthStateListener) -> None:
        self._listeners.append(listener)
        listener(self.current_user_id())

    def _notify(self) -> None:
        uid = self.current_user_id()
        for listener in self._listeners:
            listener(uid)

    @abstractmethod
    def sign_in_with_password(self, email: str, password: str) -> str:
        ...

    @abstractmethod
    def sign_in_with_federated_credential(self, id_token: str, provider_id: str = GOOGLE_PROVIDER_ID) -> str:
        ...

    @abstractmethod
    def create_user(self, email: str, password: str) -> str:
        ...

    @abstractmethod
    def current_user_id(self) -> Optional[str]:
        ...

    @abstractmethod
    def send_password_reset(self, email: str) -> None:
        ...

    @abstractmethod
    def sign_out(self) -> None:
        ...

    @abstractmethod
    def delete_current_user(self) -> None:
        ...


class IdentityToolkitProvider(IdentityProvider):
    """Firebase Authentication through the Identity Toolkit REST API."""

    def __init__(self, api_key: str, http: Optional[requests.Session] = None, timeout: int = 30):
        super().__init__()
        self.api_key = api_key
        self.http = http or requests.Session()
        self.timeout = timeout
        self._session: Optional[AuthSession] = None

    # ---------- Private helpers ----------
    def _post(self, action: str, body: dict) -> dict:
        url = f"{IDENTITY_TOOLKIT_BASE}/accounts:{action}"
        try:
            response = self.http.post(url, params={"key": self.api_key}, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"AUTH_{action.upper()} | Error: {e}")
            raise IdentityProviderError(f"Could not reach the sign-in service: {e}") from e

        if response.status_code != 200:
            try:
                code = response.json().get("error", {}).get("message", "")
            except ValueError:
                code = response.text
            logger.error(f"AUTH_{action.upper()} | Status: {response.status_code} | Error: {code}")
            raise IdentityProviderError(f"{action} failed: {code}", code=code)

        logger.info(f"AUTH_{action.upper()} | Status: {response.status_code}")
        return response.json()

    def _start_session(self, payload: dict) -> str:
        self._session = AuthSession.from_json(payload)
        self._notify()
        return self._session.uid

    # ---------- IdentityProvider ----------
    def sign_in_with_password(self, email: str, password: str) -> str:
        payload = self._post("signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._start_session(payload)

    def sign_in_with_federated_credential(self, id_token: str, provider_id: str = GOOGLE_PROVIDER_ID) -> str:
        payload = self._post("signInWithIdp", {
            "postBody": f"id_token={id_token}&providerId={provider_id}",
            "requestUri": "http://localhost",
            "returnIdpCredential": True,
            "returnSecureToken": True,
        })
        return self._start_session(payload)

    def create_user(self, email: str, password: str) -> str:
        payload = self._post("signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return self._start_session(payload)

    def current_user_id(self) -> Optional[str]:
        return self._session.uid if self._session else None

    def send_password_reset(self, email: str) -> None:
        self._post("sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})

    def sign_out(self) -> None:
        self._session = None
        self._notify()

    def delete_current_user(self) -> None:
        if self._session is None:
            raise IdentityProviderError("No user is signed in")
        self._post("delete", {"idToken": self._session.id_token})
        self._session = None
        self._notify()
