"""POST /login: check credentials, set the token cookies."""

import logging

from fileroute.auth import set_auth_cookies
from fileroute.http import json_response, redirect


logger = logging.getLogger("fileroute.app.login")


def post(request):
    app = request.app
    email = request.input("email", "")
    user = app.users.authenticate(email, request.input("password", ""))

    if user is None:
        logger.warning("Failed login attempt", extra={"context": {"email": email}})
        if request.wants_json:
            return json_response({"error": "Invalid credentials"}, 401)
        return redirect("/login?error=invalid")

    logger.info("User logged in", extra={"context": {"user_id": user["id"]}})
    pair = app.tokens.issue_tokens(user["id"])

    response = json_response(pair.to_dict()) if request.wants_json else redirect("/profile")
    return set_auth_cookies(response, pair, secure=app.config.secure_cookies)
