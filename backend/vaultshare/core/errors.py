from __future__ import annotations


class AccessError(Exception):
    """Base class for every failure a share-link visitor can run into.

    ``fatal`` errors end the session on a terminal screen; recoverable ones
    re-render the current challenge with ``message`` shown inline.
    """

    kind = "access_error"
    title = "Access Denied"
    default_message = "You do not have access to this content."
    fatal = True
    status_code = 403

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "title": self.title,
            "detail": self.message,
            "fatal": self.fatal,
        }


class LinkNotFound(AccessError):
    kind = "link_not_found"
    title = "Invalid Link"
    default_message = "This link is invalid or no longer exists."
    status_code = 404


class LinkRevoked(AccessError):
    kind = "link_revoked"
    default_message = "This link has been revoked by its owner."


class LinkExpired(AccessError):
    kind = "link_expired"
    default_message = "This link has expired."
    status_code = 410


class MaxViewsExceeded(AccessError):
    kind = "max_views_exceeded"
    default_message = "This link has reached its maximum number of views."


class PasswordIncorrect(AccessError):
    kind = "password_incorrect"
    title = "Password Required"
    default_message = "Incorrect password"
    fatal = False
    status_code = 401


class NdaNotSigned(AccessError):
    kind = "nda_not_signed"
    title = "NDA Required"
    default_message = "You must sign the NDA before viewing this content."
    fatal = False


class ContentUnavailable(AccessError):
    kind = "content_unavailable"
    title = "Content Unavailable"
    default_message = "The shared content could not be loaded. Please try again."
    status_code = 503


class BundleEmpty(ContentUnavailable):
    kind = "bundle_empty"
    default_message = "This bundle contains no documents."
    status_code = 404


class FolderEmpty(ContentUnavailable):
    kind = "folder_empty"
    default_message = "This folder contains no documents."
    status_code = 404


class GateStateError(AccessError):
    kind = "invalid_gate_state"
    title = "Unexpected Step"
    default_message = "This step is not available right now."
    fatal = False
    status_code = 409


class SignerUnavailable(Exception):
    """The signing collaborator could not be reached or answered garbage."""
