from uuid import uuid4

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from backoffice.core import context

REQUEST_ID_HEADER = b"x-request-id"


class RequestContextMiddleware:
    """Bind a request id for log correlation and echo it on the response.

    The id is reused from the console's ``X-Request-Id`` header when present and
    forwarded to the backend on every upstream call.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        request_id = headers.get(REQUEST_ID_HEADER, b"").decode("latin-1").strip() or uuid4().hex

        context.clear_context()
        context.set_request_id(request_id)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers_list = [
                    (key, value)
                    for key, value in message.get("headers", [])
                    if key.lower() != REQUEST_ID_HEADER
                ]
                headers_list.append((REQUEST_ID_HEADER, request_id.encode("latin-1")))
                message["headers"] = headers_list
            await send(message)

        await self.app(scope, receive, send_with_request_id)
