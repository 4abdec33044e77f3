"""Microsoft Graph authentication helper.

Uses azure-identity ClientSecretCredential for app-only auth.
The returned GraphServiceClient is shared by the Outlook mail, calendar
and To Do adapters.
"""

from __future__ import annotations

import logging

from azure.identity import ClientSecretCredential
from msgraph import GraphServiceClient

from src.config import settings

logger = logging.getLogger(__name__)


def build_graph_client() -> GraphServiceClient:
    """Return an authenticated GraphServiceClient for the configured tenant."""
    if not (settings.MS_CLIENT_ID and settings.MS_CLIENT_SECRET and settings.GRAPH_USER_ID):
        raise ValueError(
            "MS_CLIENT_ID, MS_CLIENT_SECRET and GRAPH_USER_ID must be set for Outlook access"
        )

    credential = ClientSecretCredential(
        tenant_id=settings.MS_TENANT_ID,
        client_id=settings.MS_CLIENT_ID,
        client_secret=settings.MS_CLIENT_SECRET,
    )
    client = GraphServiceClient(
        credentials=credential,
        scopes=["https://graph.microsoft.com/.default"],
    )
    logger.info("Microsoft Graph client initialized (tenant=%s)", settings.MS_TENANT_ID)
    return client
