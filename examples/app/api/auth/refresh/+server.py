"""POST /api/auth/refresh: trade the refresh cookie for a new token pair."""

from fileroute.auth import REFRESH_COOKIE, set_auth_cookies
from fileroute.http import json_response


def post(request):
    app = request.app
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        return json_response({"error": "No refresh token"}, 401)

    pair = app.tokens.refresh(token)
    if pair is None:
        return json_response({"error": "Invalid refresh token"}, 401)

    response = json_response({"access": pair.access, "expires": pair.expires})
    return set_auth_cookies(response, pair, secure=app.config.secure_cookies)
