"""Eligibility checks and the submission protocol for challenge entries."""
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import Request
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from innovation_hub.db import engine
from innovation_hub.exceptions import (
    AttachmentUploadError,
    ChallengeClosedError,
    ChallengeNotFoundError,
    DuplicateSubmissionError,
)
from innovation_hub.forms import SubmissionDraft, attachment_limits
from innovation_hub.models import Challenge, ChallengeStatus, ChallengeSubmission, SubmissionStatus, User, as_utc, utcnow
from innovation_hub.permissions import Capability, roles_with
from innovation_hub.services.audit import AuditService, audit_service
from innovation_hub.services.file_security import FileSecurityService, file_security
from innovation_hub.services.notifications import NotificationService, notification_service

logger = logging.getLogger(__name__)

UPLOAD_CONTEXT = "challenge_submission"
ATTACHMENT_FIELDS = ("original_name", "stored_filename", "path", "size", "mime_type", "hash", "upload_timestamp")


def deadline_passed(challenge: Challenge, now: Optional[datetime] = None) -> bool:
    if challenge.deadline is None:
        return False
    return as_utc(challenge.deadline) < (as_utc(now) or utcnow())


def is_accepting_submissions(challenge: Challenge, now: Optional[datetime] = None) -> bool:
    return challenge.status == ChallengeStatus.ACTIVE and not deadline_passed(challenge, now)


def ensure_accepting_submissions(challenge: Challenge, now: Optional[datetime] = None) -> None:
    if challenge.status != ChallengeStatus.ACTIVE:
        raise ChallengeClosedError("This challenge is not accepting submissions.")
    if deadline_passed(challenge, now):
        raise ChallengeClosedError("Submission deadline has passed.")


def storage_directory(challenge_id: int) -> str:
    return f"challenge-submissions/{challenge_id}"


class SubmissionService:
    def __init__(self, files: Optional[FileSecurityService] = None, audit: Optional[AuditService] = None,
                 notifier: Optional[NotificationService] = None):
        self.files = files or file_security
        self.audit = audit or audit_service
        self.notifier = notifier or notification_service

    def get_challenge(self, session: Session, challenge_id: int) -> Challenge:
        challenge = session.get(Challenge, challenge_id)
        if challenge is None:
            raise ChallengeNotFoundError(f"Challenge {challenge_id} not found")
        return challenge

    def existing_submission(self, session: Session, challenge_id: int, author_id: int) -> Optional[ChallengeSubmission]:
        return session.exec(
            select(ChallengeSubmission)
            .where(ChallengeSubmission.challenge_id == challenge_id, ChallengeSubmission.author_id == author_id)
        ).first()

    def attachment_limits(self) -> dict:
        return attachment_limits(self.files)

    def open_form(self, challenge_id: int, user: User, now: Optional[datetime] = None) -> Challenge:
        """Challenge for the submit page, or the reason the page cannot be shown."""
        with Session(engine) as session:
            challenge = self.get_challenge(session, challenge_id)
            ensure_accepting_submissions(challenge, now)
            if self.existing_submission(session, challenge.id, user.id):
                raise DuplicateSubmissionError(challenge.id, user.id)
            return challenge

    async def submit(self, challenge_id: int, user: User, draft: SubmissionDraft,
                     request: Optional[Request] = None, now: Optional[datetime] = None) -> ChallengeSubmission:
        form = draft.validate(self.attachment_limits())

        with Session(engine) as session:
            challenge = self.get_challenge(session, challenge_id)
            # state may have changed since the form was opened
            ensure_accepting_submissions(challenge, now)
            if self.existing_submission(session, challenge.id, user.id):
                logger.info("Duplicate submission blocked for user %s on challenge %s", user.id, challenge.id)
                raise DuplicateSubmissionError(challenge.id, user.id)

            stored = await self._store_attachments(challenge.id, user, draft.attachments)

            submission = ChallengeSubmission(
                challenge_id=challenge.id,
                author_id=user.id,
                title=form.title,
                description=form.description,
                solution_approach=form.solution_approach,
                implementation_plan=form.implementation_plan,
                attachments=stored,
                team_submission=form.team_submission,
                team_members=form.team_members if form.team_submission else None,
                status=SubmissionStatus.SUBMITTED,
                submitted_at=now or utcnow(),
            )
            session.add(submission)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                self._discard(stored)
                logger.warning("Concurrent submission by user %s on challenge %s rejected by the store",
                               user.id, challenge.id)
                raise DuplicateSubmissionError(challenge.id, user.id)
            session.refresh(submission)
            challenge_title = challenge.title

        logger.info("Submission %s created for challenge %s by user %s", submission.id, challenge_id, user.id)

        self.audit.record(
            "challenge_participation",
            "ChallengeSubmission",
            submission.id,
            None,
            submission.model_dump(),
            actor_id=user.id,
            request=request,
        )
        self.notifier.send_to_roles(
            roles_with(Capability.REVIEW_SUBMISSIONS),
            "challenge_submission",
            {
                "title": "New Challenge Submission",
                "message": f"A new submission '{submission.title}' has been made to challenge "
                           f"'{challenge_title}' by {user.display_name}",
                "related_id": submission.id,
                "related_type": "ChallengeSubmission",
                "challenge_id": challenge_id,
            },
        )
        self.notifier.send_to_user(
            user,
            "submission_confirmation",
            {
                "title": "Submission Confirmed",
                "message": f"Your submission '{submission.title}' to challenge '{challenge_title}' "
                           f"has been received successfully.",
                "related_id": submission.id,
                "related_type": "ChallengeSubmission",
                "challenge_id": challenge_id,
            },
        )
        return submission

    async def _store_attachments(self, challenge_id: int, user: User, uploads) -> List[dict]:
        stored: List[dict] = []
        for upload in uploads:
            result = await self.files.store_file(upload, storage_directory(challenge_id), UPLOAD_CONTEXT,
                                                 uploader_id=user.id)
            if not result.success:
                self._discard(stored)
                logger.warning("Attachment %s rejected: %s", upload.filename, "; ".join(result.errors))
                raise AttachmentUploadError(result.errors, upload.filename)
            stored.append({k: result.metadata[k] for k in ATTACHMENT_FIELDS})
        return stored

    def _discard(self, stored: List[dict]) -> None:
        for meta in stored:
            self.files.delete_file(meta["path"])


submission_service = SubmissionService()
