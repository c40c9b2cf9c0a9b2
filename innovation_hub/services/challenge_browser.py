"""Search, filter, sort and paginate challenges and the submissions made to them."""
from dataclasses import dataclass, field, replace
from datetime import datetime
from math import ceil
from typing import ClassVar, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from sqlalchemy import func, or_
from sqlmodel import Session, select

from innovation_hub.config import PAGE_SIZE
from innovation_hub.formatting import days_remaining, status_badge_class
from innovation_hub.models import Challenge, ChallengeStatus, ChallengeSubmission, SubmissionStatus, User, utcnow

ALL = "all"
ASC = "asc"
DESC = "desc"

STATUS_CHOICES = (ALL,) + tuple(s.value for s in ChallengeStatus)
SORTABLE_FIELDS = ("created_at", "title", "deadline", "status", "category", "submissions_count")
DEFAULT_SORT = "created_at"

SUBMISSION_STATUS_CHOICES = (ALL,) + tuple(s.value for s in SubmissionStatus)
SUBMISSION_SORTABLE_FIELDS = ("created_at", "submitted_at", "title", "status", "author_name")
SUBMISSIONS_PAGE_SIZE = 20

UNKNOWN_AUTHOR = "Unknown"


@dataclass(frozen=True)
class BrowserState:
    search: str = ""
    status: str = ALL
    category: str = ALL
    sort_by: str = DEFAULT_SORT
    sort_direction: str = DESC
    page: int = 1

    status_choices: ClassVar[Tuple[str, ...]] = STATUS_CHOICES
    sortable_fields: ClassVar[Tuple[str, ...]] = SORTABLE_FIELDS

    @classmethod
    def from_params(cls, search: str = "", status: str = ALL, category: str = ALL,
                    sort_by: str = DEFAULT_SORT, sort_direction: str = DESC, page: int = 1) -> "BrowserState":
        return cls(
            search=(search or "").strip(),
            status=status if status in cls.status_choices else ALL,
            category=(category or ALL).strip() or ALL,
            sort_by=sort_by if sort_by in cls.sortable_fields else DEFAULT_SORT,
            sort_direction=sort_direction if sort_direction in (ASC, DESC) else DESC,
            page=max(1, int(page or 1)),
        )

    # Any filter change sends the user back to the first page.
    def update_search(self, search: str) -> "BrowserState":
        return replace(self, search=(search or "").strip(), page=1)

    def update_status(self, status: str) -> "BrowserState":
        return replace(self, status=status if status in self.status_choices else ALL, page=1)

    def update_category(self, category: str) -> "BrowserState":
        return replace(self, category=(category or ALL).strip() or ALL, page=1)

    def sort(self, field_name: str) -> "BrowserState":
        if field_name not in self.sortable_fields:
            field_name = DEFAULT_SORT
        if field_name == self.sort_by:
            direction = ASC if self.sort_direction == DESC else DESC
            return replace(self, sort_direction=direction, page=1)
        return replace(self, sort_by=field_name, sort_direction=ASC, page=1)

    def go_to(self, page: int) -> "BrowserState":
        return replace(self, page=max(1, int(page)))

    def query_params(self) -> Dict[str, str]:
        params = {
            "search": self.search,
            "status": self.status,
            "category": self.category,
            "sort_by": self.sort_by,
            "sort_direction": self.sort_direction,
            "page": str(self.page),
        }
        return {k: v for k, v in params.items() if v != ""}

    def query_string(self) -> str:
        return urlencode(self.query_params())

    def sort_link(self, field_name: str) -> str:
        return "?" + self.sort(field_name).query_string()

    def page_link(self, page: int) -> str:
        return "?" + self.go_to(page).query_string()


class SubmissionBrowserState(BrowserState):
    """Same transitions over a single challenge's submissions; there is no category filter."""

    status_choices = SUBMISSION_STATUS_CHOICES
    sortable_fields = SUBMISSION_SORTABLE_FIELDS

    def query_params(self) -> Dict[str, str]:
        params = super().query_params()
        params.pop("category", None)
        return params


@dataclass
class ResultPage:
    items: List[dict]
    total: int
    page: int
    page_size: int
    user_submissions: Dict[int, ChallengeSubmission] = field(default_factory=dict)

    @property
    def pages(self) -> int:
        return max(1, ceil(self.total / self.page_size)) if self.page_size else 1

    @property
    def has_pages(self) -> bool:
        return self.pages > 1

    @property
    def ids(self) -> List[int]:
        return [item["id"] for item in self.items]


def _submission_count():
    return (
        select(ChallengeSubmission.challenge_id, func.count(ChallengeSubmission.id).label("submissions_count"))
        .group_by(ChallengeSubmission.challenge_id)
        .subquery()
    )


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search(columns, term: str):
    pattern = "%" + _escape_like(term) + "%"
    return or_(*(column.ilike(pattern, escape="\\") for column in columns))


def _apply_filters(query, state: BrowserState):
    if state.search:
        query = query.where(_search((Challenge.title, Challenge.description, Challenge.category), state.search))
    if state.status != ALL:
        query = query.where(Challenge.status == state.status)
    if state.category != ALL:
        query = query.where(Challenge.category == state.category)
    return query


def _clamp(session: Session, count_query, state: BrowserState, page_size: int) -> Tuple[int, int]:
    total = session.exec(count_query).one()
    pages = max(1, ceil(total / page_size))
    return total, min(state.page, pages)


def list_challenges(session: Session, state: BrowserState, viewer: Optional[User] = None,
                    page_size: int = PAGE_SIZE, now: Optional[datetime] = None) -> ResultPage:
    now = now or utcnow()
    counts = _submission_count()
    submissions_count = func.coalesce(counts.c.submissions_count, 0)

    # counting and listing share the same outer joins, so neither drops rows
    base = (
        select(Challenge, User.display_name, submissions_count)
        .outerjoin(User, Challenge.author_id == User.id)
        .outerjoin(counts, counts.c.challenge_id == Challenge.id)
    )
    filtered = _apply_filters(base, state)
    total, page = _clamp(session, select(func.count()).select_from(filtered.subquery()), state, page_size)

    sort_column = submissions_count if state.sort_by == "submissions_count" else getattr(Challenge, state.sort_by)
    order = sort_column.asc() if state.sort_direction == ASC else sort_column.desc()
    tie_breaker = Challenge.id.asc() if state.sort_direction == ASC else Challenge.id.desc()

    rows = session.exec(
        filtered
        .order_by(order, tie_breaker)
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()

    items = []
    for challenge, author_name, count in rows:
        card = challenge.model_dump()
        card["author_name"] = author_name or UNKNOWN_AUTHOR
        card["submissions_count"] = count or 0
        card["badge_class"] = status_badge_class(challenge.status)
        card["days_remaining"] = days_remaining(challenge.deadline, now)
        items.append(card)

    result = ResultPage(items=items, total=total, page=page, page_size=page_size)
    result.user_submissions = user_submissions(session, viewer, result.ids)
    return result


def list_submissions(session: Session, challenge_id: int, state: SubmissionBrowserState,
                     page_size: int = SUBMISSIONS_PAGE_SIZE) -> ResultPage:
    """Submissions to one challenge for reviewers; search also matches the author's name."""
    base = (
        select(ChallengeSubmission, User.display_name)
        .outerjoin(User, ChallengeSubmission.author_id == User.id)
        .where(ChallengeSubmission.challenge_id == challenge_id)
    )
    if state.search:
        base = base.where(_search(
            (ChallengeSubmission.title, ChallengeSubmission.description, User.display_name), state.search,
        ))
    if state.status != ALL:
        base = base.where(ChallengeSubmission.status == state.status)
    total, page = _clamp(session, select(func.count()).select_from(base.subquery()), state, page_size)

    sort_column = User.display_name if state.sort_by == "author_name" else getattr(ChallengeSubmission, state.sort_by)
    order = sort_column.asc() if state.sort_direction == ASC else sort_column.desc()
    tie_breaker = ChallengeSubmission.id.asc() if state.sort_direction == ASC else ChallengeSubmission.id.desc()

    rows = session.exec(
        base.order_by(order, tie_breaker).offset((page - 1) * page_size).limit(page_size)
    ).all()

    items = []
    for submission, author_name in rows:
        row = submission.model_dump()
        row["author_name"] = author_name or UNKNOWN_AUTHOR
        items.append(row)
    return ResultPage(items=items, total=total, page=page, page_size=page_size)


def user_submissions(session: Session, viewer: Optional[User],
                     challenge_ids: Iterable[int]) -> Dict[int, ChallengeSubmission]:
    ids = list(challenge_ids)
    if viewer is None or not ids:
        return {}
    subs = session.exec(
        select(ChallengeSubmission)
        .where(ChallengeSubmission.author_id == viewer.id, ChallengeSubmission.challenge_id.in_(ids))
    ).all()
    return {sub.challenge_id: sub for sub in subs}


def categories(session: Session) -> List[str]:
    values = session.exec(select(Challenge.category).distinct().order_by(Challenge.category)).all()
    return [v for v in values if v]
