"""POST /register: create an account and log it in."""

import logging

from fileroute.auth import set_auth_cookies
from fileroute.http import json_response, redirect


logger = logging.getLogger("fileroute.app.register")


def post(request):
    app = request.app
    result = request.validate({
        "name": "required|max:100",
        "email": "required|email",
        "password": "required|min:8",
    })
    if not result.ok:
        if request.wants_json:
            return json_response({"errors": result.errors}, 422)
        return redirect("/register?error=invalid")

    if app.users.find_by_email(result.data["email"]) is not None:
        if request.wants_json:
            return json_response({"errors": {"email": ["Email already registered"]}}, 422)
        return redirect("/register?error=taken")

    user_id = app.users.create(result.data)
    logger.info("User registered", extra={"context": {"user_id": user_id}})

    pair = app.tokens.issue_tokens(user_id)
    response = json_response(pair.to_dict(), 201) if request.wants_json else redirect("/profile")
    return set_auth_cookies(response, pair, secure=app.config.secure_cookies)
