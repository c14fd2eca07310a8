from __future__ import annotations


class CardflowError(Exception):
  status_code = 500

  def __init__(self, message: str) -> None:
    super().__init__(message)
    self.message = message


class NotFoundError(CardflowError):
  status_code = 404


class PermissionDeniedError(CardflowError):
  status_code = 403


class InvalidArgumentError(CardflowError):
  status_code = 400


class ConflictError(CardflowError):
  status_code = 409


class TransientStorageError(CardflowError):
  """Connection loss or lock timeout; the whole request is safe to retry."""

  status_code = 500
