from fileroute.auth import clear_auth_cookies
from fileroute.http import redirect


def handler(request):
    return clear_auth_cookies(redirect("/"))
