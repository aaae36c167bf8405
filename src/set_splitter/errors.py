from __future__ import annotations
from typing import List, Optional


SKIP_NOT_A_SET = "not a set"
SKIP_ALREADY_PROCESSED = "already processed"
SKIP_IN_PROGRESS = "processing in progress"
SKIP_COMPONENT = "component entry"


class SetSplitterError(Exception):
    reason = "error"


class UpstreamFailure(SetSplitterError):
    """A catalog client call failed. Aborts the remaining pipeline steps."""

    reason = "upstream failure"

    def __init__(self, operation: str, detail: object = None):
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}")


class ConfigurationInvalid(SetSplitterError):
    reason = "configuration invalid"


class PartialCreationFailure(UpstreamFailure):
    reason = "partial creation failure"

    def __init__(self, title: str, detail: object = None, created: Optional[List] = None):
        self.title = title
        self.created = list(created or [])
        super().__init__(f'create component "{title}"', detail)
