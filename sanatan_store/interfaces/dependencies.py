from fastapi import Request

from sanatan_store.core.errors import ServiceUnavailable


def get_container(request: Request):
    """The composition root built in main, kept on app.state."""
    return request.app.state.container


def current_user_id(request: Request) -> str:
    container = get_container(request)
    if container.tokens is None:
        raise ServiceUnavailable("Sign-in is not configured")
    return container.tokens.user_id_from_header(request.headers.get("Authorization"))
