from __future__ import annotations

import json
import os
import pathlib
from typing import Optional

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google.oauth2.service_account import Credentials as SACreds
from google_auth_oauthlib.flow import InstalledAppFlow

from .config import Settings

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]


def _token_path(path: str) -> pathlib.Path:
    token_path = pathlib.Path(path)
    token_path.parent.mkdir(parents=True, exist_ok=True)
    return token_path


def _service_account_info(value: str) -> dict:
    """Accept either inline JSON or a path to a key file."""

    text = value.strip()
    if not text.startswith("{") and os.path.exists(text):
        text = pathlib.Path(text).read_text(encoding="utf-8")
    return json.loads(text)


def creds_from_service_account(
    json_str: str, subject: Optional[str], scopes: list[str]
) -> SACreds:
    service_creds = SACreds.from_service_account_info(
        _service_account_info(json_str), scopes=scopes
    )
    if subject:
        service_creds = service_creds.with_subject(subject)
    return service_creds


def creds_from_oauth(
    client_secrets_path: str, token_store: str, scopes: list[str]
) -> Credentials:
    token_path = _token_path(token_store)
    if token_path.exists():
        creds = Credentials.from_authorized_user_file(str(token_path), scopes)
        if creds.expired and creds.refresh_token:
            creds.refresh(Request())
            token_path.write_text(creds.to_json())
        return creds
    flow = InstalledAppFlow.from_client_secrets_file(client_secrets_path, scopes=scopes)
    creds = flow.run_local_server(port=0)
    token_path.write_text(creds.to_json())
    return creds


def resolve_credentials(
    oauth_client_path: Optional[str],
    service_json: Optional[str],
    delegated_subject: Optional[str],
    token_store: str,
):
    if service_json:
        return creds_from_service_account(service_json, delegated_subject, SCOPES)
    if oauth_client_path:
        if not os.path.exists(oauth_client_path):
            return None
        return creds_from_oauth(oauth_client_path, token_store, SCOPES)
    return None


def credentials_from_settings(cfg: Settings):
    return resolve_credentials(
        cfg.GOOGLE_OAUTH_CLIENT_SECRETS,
        cfg.GOOGLE_SERVICE_ACCOUNT_JSON,
        cfg.DELEGATED_SUBJECT,
        cfg.TOKEN_STORE,
    )
