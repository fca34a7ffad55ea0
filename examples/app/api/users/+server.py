from fileroute.auth import login_required


@login_required
def get(request):
    limit = request.get_query("limit", "100")
    count = int(limit) if limit.isdigit() else 100
    return request.app.users.all()[:count]
