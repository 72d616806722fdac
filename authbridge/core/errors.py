"""
Error types shared by every module.

ApiError keeps FastAPI's HTTPException semantics but carries a stable,
machine-readable code that the exception handler in main.py renders as
{"ok": false, "error": <code>}.
"""

from typing import Optional

from fastapi import HTTPException


class ApiError(HTTPException):
    def __init__(self, status_code: int, code: str, message: Optional[str] = None):
        super().__init__(status_code=status_code, detail=message or code)
        self.code = code
        self.message = message

    def to_body(self) -> dict:
        body = {"ok": False, "error": self.code}
        if self.message:
            body["message"] = self.message
        return body


class Unauthenticated(ApiError):
    def __init__(self, clear_cookies: bool = False):
        super().__init__(401, "unauthenticated")
        self.clear_cookies = clear_cookies


class LoginRequired(Exception):
    """Raised by page routes; rendered as a redirect to the login entry point."""

    def __init__(self, location: str, clear_cookies: bool = False):
        super().__init__(location)
        self.location = location
        self.clear_cookies = clear_cookies
