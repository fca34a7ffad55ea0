"""
=============================================================================
TEMPLATE RENDERING
=============================================================================

Pages, layouts, loading and error fragments are Jinja2 templates that live
inside the application tree, next to the folder they belong to. Template
names are paths relative to the tree root ("blog/[slug]/page.html").

Every template sees the same request-scoped context:

    request      the Request
    params       route parameters            {"slug": "my-post"}
    user         authenticated principal or None
    csp_nonce    nonce for inline <script>/<style>
    csrf_token   token for forms
    csrf_field() hidden <input name="_csrf"> ready to drop into a form

Layouts additionally get `content` (the rendered inner HTML, already safe)
and every top-level `{% set %}` of the page, so a page can do

    {% set title = "Profile" %}

and the root layout can print `{{ title }}` in <head>.

=============================================================================
"""

from typing import Any, Dict, Optional, Tuple
import logging

from jinja2 import Environment, FileSystemLoader, TemplateNotFound, select_autoescape
from markupsafe import Markup, escape

from .exceptions import TemplateNotFoundError
from .http.request import Request


logger = logging.getLogger(__name__)


class TemplateRenderer:
    """
    Jinja2 environment rooted at the application directory.

    Usage:
        renderer = TemplateRenderer("app", debug=True)
        html, exported = renderer.render_page("page.html", request)
        html = renderer.render_layout("layout.html", request, html, exported)
    """

    def __init__(self, app_dir: str, debug: bool = False):
        self.app_dir = app_dir
        self.env = Environment(
            loader=FileSystemLoader(app_dir),
            autoescape=select_autoescape(["html", "htm", "xml"]),
            auto_reload=debug,
        )

    def context(self, request: Request, **extra: Any) -> Dict[str, Any]:
        def csrf_field() -> Markup:
            return Markup('<input type="hidden" name="_csrf" value="{}">').format(request.csrf_token)

        ctx = {
            "request": request,
            "params": request.params,
            "user": request.user,
            "csp_nonce": request.csp_nonce,
            "csrf_token": request.csrf_token,
            "csrf_field": csrf_field,
        }
        ctx.update(extra)
        return ctx

    def _get(self, name: str):
        try:
            return self.env.get_template(name)
        except TemplateNotFound as e:
            raise TemplateNotFoundError(name) from e

    def render(self, name: str, request: Request, **extra: Any) -> str:
        """Render a template with the request context."""
        return self._get(name).render(self.context(request, **extra))

    def render_page(self, name: str, request: Request) -> Tuple[str, Dict[str, Any]]:
        """
        Render a page and return (html, exported variables).

        Exported variables are the page's top-level `{% set %}` names.
        """
        module = self._get(name).make_module(self.context(request))
        exported = {key: value for key, value in vars(module).items() if not key.startswith("_")}
        return str(module), exported

    def render_layout(
        self,
        name: str,
        request: Request,
        content: str,
        exported: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Wrap already-rendered content in a layout."""
        extra = dict(exported or {})
        extra["content"] = Markup(content)
        return self.render(name, request, **extra)

    def exists(self, name: str) -> bool:
        try:
            self.env.get_template(name)
        except TemplateNotFound:
            return False
        return True


def debug_error_html(error: BaseException, trace: str) -> str:
    """Error details for debug mode; never shown otherwise."""
    return f"<pre>{escape(str(error))}\n\n{escape(trace)}</pre>"
