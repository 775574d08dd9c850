"""
Authentication Dependencies

API key check for operator endpoints and token check for gateway events.
Expected values come from the settings of the running application context.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status


async def verify_api_key(
    request: Request,
    x_api_key: str = Header(..., description="Dashboard API key"),
):
    """
    Verify API key from X-API-Key header.

    Raises:
        HTTPException: If API key is invalid, or dashboard is not configured

    Returns:
        True if authentication successful
    """
    expected_key = request.app.state.context.settings.dashboard_api_key

    # Check if dashboard is configured
    if not expected_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dashboard not configured (DASHBOARD_API_KEY not set in environment)",
        )

    if x_api_key != expected_key:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    return True


async def verify_gateway_token(
    request: Request,
    x_gateway_token: Optional[str] = Header(None),
):
    """Check X-Gateway-Token when WHATSAPP_GATEWAY_TOKEN is set."""
    expected_token = request.app.state.context.settings.whatsapp_gateway_token
    if expected_token and x_gateway_token != expected_token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid gateway token",
        )
    return True
