"""Standard HTTP exceptions for the API layer."""

from typing import Self

from fastapi import HTTPException, status


class CustomHTTPException(HTTPException):
    def with_context(self, detail: str) -> Self:
        """
        Add context to an HTTP exception.

        Args:
            detail: information to add

        Returns:
            A new HTTPException with updated details
        """
        return type(self)(status_code=self.status_code, detail=detail, headers=self.headers)


UNAUTHORIZED = CustomHTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid authentication credentials",
    headers={"WWW-Authenticate": "Bearer"},
)

FORBIDDEN = CustomHTTPException(
    status_code=status.HTTP_403_FORBIDDEN,
    detail="Not enough permissions to perform this action",
)
