"""OAuth2 authentication for the Gmail send scope."""

from __future__ import annotations

import logging
import os

from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build

from replyvet.config import GmailConfig

logger = logging.getLogger(__name__)

SCOPES = ["https://www.googleapis.com/auth/gmail.send"]


def authenticate(config: GmailConfig) -> Credentials:
    """Load cached credentials, refreshing or running the consent flow as needed."""
    creds = None

    if os.path.exists(config.token_file):
        creds = Credentials.from_authorized_user_file(config.token_file, SCOPES)

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())
        else:
            if not os.path.exists(config.credentials_file):
                logger.error(
                    "%s not found. Download OAuth 2.0 credentials from Google Cloud Console.",
                    config.credentials_file,
                )
                raise FileNotFoundError(f"Gmail credentials file not found: {config.credentials_file}")
            flow = InstalledAppFlow.from_client_secrets_file(config.credentials_file, SCOPES)
            creds = flow.run_local_server(port=0)

        with open(config.token_file, "w") as f:
            f.write(creds.to_json())

    return creds


def get_gmail_service(config: GmailConfig):
    """Return an authenticated Gmail API service object."""
    creds = authenticate(config)
    return build("gmail", "v1", credentials=creds, cache_discovery=False)
