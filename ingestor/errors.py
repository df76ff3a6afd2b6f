from collections.abc import Sequence

_SNIPPET_LIMIT = 120


def render_snippet(message: Sequence[str] | str) -> str:
    if isinstance(message, str):
        snippet = message
    else:
        snippet = ' '.join(repr(frame) for frame in message)
    if len(snippet) > _SNIPPET_LIMIT:
        snippet = snippet[: _SNIPPET_LIMIT - 3] + '...'
    return snippet


class DecodeError(ValueError):
    def __init__(
        self,
        cause: str,
        snippet: Sequence[str] | str = '',
        field: str | None = None,
    ):
        self.cause = cause
        self.field = field
        self.snippet = render_snippet(snippet)
        message = cause
        if self.snippet:
            message = f'{message}: {self.snippet}'
        super().__init__(message)


class UnknownPDUTypeError(DecodeError):
    pass


class MalformedPDUError(DecodeError):
    pass


class InvalidFieldError(DecodeError):
    def __init__(self, cause: str, snippet: Sequence[str] | str, field: str):
        super().__init__(cause, snippet, field=field)


class PointConstructionError(DecodeError):
    pass


class SourceError(Exception):
    def __init__(self, source: str, cause: str, msg_id: str | None = None):
        detail = f'{source} ({msg_id})' if msg_id else source
        super().__init__(f'Source {detail}: {cause}')
        self.source = source
        self.cause = cause
        self.msg_id = msg_id


class SinkError(Exception):
    def __init__(self, point_name: str, cause: str):
        super().__init__(f'Failed to send point {point_name!r}: {cause}')
        self.point_name = point_name
        self.cause = cause
