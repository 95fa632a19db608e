"""
Gateway authentication for the directory and backup services.
When the gateways sit behind Microsoft Entra ID, a bearer token is acquired
with the client credentials flow; otherwise requests go out unauthenticated.
"""

import asyncio
import logging
from functools import lru_cache
from typing import Dict, Optional

import msal

from gpowatch.core.config import settings
from gpowatch.core.exceptions import GatewayAuthFailure

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_msal_app() -> msal.ConfidentialClientApplication:
    """Get MSAL confidential client application"""
    return msal.ConfidentialClientApplication(
        client_id=settings.MS_CLIENT_ID,
        client_credential=settings.MS_CLIENT_SECRET,
        authority=settings.MS_AUTHORITY
    )


def get_gateway_token() -> Optional[str]:
    """
    Acquire an access token for the collaborator gateways.

    Returns:
        The bearer token, or None when no client is configured

    Raises:
        GatewayAuthFailure: a client is configured but no token was issued
    """
    if not settings.MS_CLIENT_ID or not settings.PARSED_GATEWAY_SCOPES:
        return None

    msal_app = get_msal_app()
    scopes = settings.PARSED_GATEWAY_SCOPES
    result = msal_app.acquire_token_silent(scopes=scopes, account=None)
    if not result:
        logger.info("No cached token found, using client credentials flow")
        result = msal_app.acquire_token_for_client(scopes=scopes)

    if result and "access_token" in result:
        return result["access_token"]

    error = (result or {}).get("error_description") or (result or {}).get("error") or "no token returned"
    logger.error(f"Failed to acquire gateway token: {error}")
    raise GatewayAuthFailure(f"Failed to acquire gateway token: {error}")


def auth_headers() -> Dict[str, str]:
    token = get_gateway_token()
    if token:
        return {"Authorization": f"Bearer {token}"}
    return {}


async def gateway_headers() -> Dict[str, str]:
    """
    Request headers for a gateway call, acquired in a worker thread.
    Token acquisition may hit the identity provider over the network.
    """
    return await asyncio.to_thread(auth_headers)
