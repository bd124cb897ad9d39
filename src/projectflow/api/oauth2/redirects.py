# Results of the browser-facing authorize and callback steps.
# Created: 2026-10-12
#
# The authorize endpoint is a state machine whose transitions end in an HTTP
# redirect. Expected branches (login needed, access denied, bad PKCE) are
# values, not exceptions: the route just renders whatever it gets back.

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from fastapi.responses import JSONResponse, RedirectResponse


def build_redirect_url(target: str, params: dict[str, str | None]) -> str:
    """Append ``params`` to ``target``, keeping any query it already has.

    Works for https URLs and private-scheme deep links alike
    (``cursor://anysphere.cursor-mcp/oauth/callback``). ``None`` values are
    dropped; everything else is echoed verbatim.
    """
    parts = urlsplit(target)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.extend((k, v) for k, v in params.items() if v is not None)
    return urlunsplit(parts._replace(query=urlencode(query)))


def is_valid_redirect_uri(uri: str | None) -> bool:
    """Absolute URI with a scheme; deep links need no host but https does."""
    if not uri:
        return False
    parts = urlsplit(uri)
    if not parts.scheme or parts.fragment:
        return False
    if parts.scheme in ("http", "https"):
        return bool(parts.netloc)
    return True


@dataclass(frozen=True)
class Redirect:
    url: str
    status_code: int = 302

    def to_response(self) -> RedirectResponse:
        return RedirectResponse(self.url, status_code=self.status_code)


@dataclass(frozen=True)
class JsonError:
    """Returned only when there is no trustworthy redirect target."""

    error: str
    error_description: str
    status_code: int = 400

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content={"error": self.error, "error_description": self.error_description},
        )


AuthorizeResult = Redirect | JsonError


def error_redirect(
    redirect_uri: str,
    error: str,
    description: str | None = None,
    state: str | None = None,
) -> Redirect:
    return Redirect(
        build_redirect_url(
            redirect_uri,
            {"error": error, "error_description": description, "state": state or None},
        )
    )


def native_callback(
    deep_link: str,
    *,
    code: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    state: str | None = None,
) -> Redirect:
    """Bridge authorization-server query parameters into a native deep link."""
    if error:
        return error_redirect(deep_link, error, error_description, state)
    if not code:
        return error_redirect(
            deep_link,
            "invalid_request",
            "No authorization code received. Please check OAuth configuration.",
            state,
        )
    return Redirect(build_redirect_url(deep_link, {"code": code, "state": state or None}))
