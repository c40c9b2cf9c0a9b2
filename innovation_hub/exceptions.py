from typing import List, Optional


class HubError(Exception):
    """Base class for errors raised by the challenge services."""


class ChallengeNotFoundError(HubError):
    pass


class ChallengeClosedError(HubError):
    """The challenge exists but is not accepting submissions."""


class DuplicateSubmissionError(HubError):
    def __init__(self, challenge_id: int, author_id: int):
        super().__init__(f"user {author_id} already submitted to challenge {challenge_id}")
        self.challenge_id = challenge_id
        self.author_id = author_id


class AttachmentUploadError(HubError):
    def __init__(self, errors: List[str], filename: Optional[str] = None):
        super().__init__(", ".join(errors))
        self.errors = list(errors)
        self.filename = filename
