import io
from datetime import timedelta

from sqlmodel import Session

from innovation_hub.auth import hash_password
from innovation_hub.db import engine
from innovation_hub.main import app
from innovation_hub.models import AppNotification, AuditLog, Challenge, ChallengeSubmission, utcnow
from innovation_hub.routers.submissions import get_submission_service
from innovation_hub.services.file_security import FileSecurityService
from innovation_hub.services.submissions import SubmissionService

from conftest import all_rows


def _pdf(name="plan.pdf", data=b"%PDF-1.4\n%route test\n"):
    return ("attachments", (name, io.BytesIO(data), "application/pdf"))


# --- auth ---

def test_anonymous_users_are_sent_to_login(client_for):
    client = client_for()
    for url in ("/", "/challenges/", "/challenges/1/submit", "/notifications/"):
        response = client.get(url, follow_redirects=False)
        assert response.status_code == 303, url
        assert response.headers["location"] == "/auth/login"


def test_login_sets_cookie(client_for, make_user):
    user = make_user("amina")
    with Session(engine) as session:
        user.password_hash = hash_password("s3cret")
        session.add(user)
        session.commit()

    client = client_for()
    bad = client.post("/auth/login", data={"username": "amina", "password": "wrong"})
    assert bad.status_code == 401
    assert "Invalid username or password" in bad.text

    good = client.post("/auth/login", data={"username": "amina", "password": "s3cret"}, follow_redirects=False)
    assert good.status_code == 303
    assert good.headers["location"] == "/challenges/"
    assert "access_token" in good.cookies


# --- challenge list ---

def test_list_shows_cards(client_for, make_user, make_challenge, make_submission):
    author = make_user("manager", roles="manager", display_name="Grace Wanjiru")
    viewer = make_user("viewer")
    submitted = make_challenge(author, title="Already entered")
    make_challenge(author, title="Open for entries")
    make_challenge(author, title="Finished one", status="completed")
    make_submission(submitted, viewer)

    response = client_for(viewer).get("/challenges/")
    assert response.status_code == 200
    html = response.text
    assert "Open for entries" in html
    assert "by Grace Wanjiru" in html
    assert "1 submission" in html
    assert "You have submitted to this challenge" in html
    assert f'href="/challenges/{submitted.id}/submit"' not in html
    assert "Create Challenge" not in html


def test_list_filters_from_query(client_for, make_user, make_challenge):
    author = make_user("manager", roles="manager")
    make_challenge(author, title="Water kiosks", category="sustainability")
    make_challenge(author, title="Depot cameras", category="safety")

    response = client_for(author).get("/challenges/", params={"search": "kiosk"})
    assert "Water kiosks" in response.text
    assert "Depot cameras" not in response.text
    assert "Create Challenge" in response.text


def test_empty_list(client_for, make_user):
    response = client_for(make_user("dev", roles="developer")).get("/challenges/", params={"search": "nothing"})
    assert "No challenges found" in response.text
    assert "Create First Challenge" in response.text


# --- submit page ---

def test_submit_page_renders(client_for, make_user, make_challenge):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author, title="Smart pothole detection")
    response = client_for(make_user("viewer")).get(f"/challenges/{challenge.id}/submit")
    assert response.status_code == 200
    assert "Smart pothole detection" in response.text
    assert 'name="solution_approach"' in response.text


def test_submit_page_missing_or_closed(client_for, make_user, make_challenge):
    author = make_user("manager", roles="manager")
    closed = make_challenge(author, status="completed")
    expired = make_challenge(author, deadline=utcnow() - timedelta(days=2))
    client = client_for(make_user("viewer"))
    assert client.get("/challenges/999/submit").status_code == 404
    assert client.get(f"/challenges/{closed.id}/submit").status_code == 404
    assert client.get(f"/challenges/{expired.id}/submit").status_code == 404


def test_submit_page_redirects_when_already_submitted(client_for, make_user, make_challenge, make_submission):
    author = make_user("manager", roles="manager")
    viewer = make_user("viewer")
    challenge = make_challenge(author)
    make_submission(challenge, viewer)

    client = client_for(viewer)
    response = client.get(f"/challenges/{challenge.id}/submit", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == f"/challenges/{challenge.id}"
    assert "You have already submitted to this challenge." in client.get(response.headers["location"]).text


def test_post_submission(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    viewer = make_user("viewer")
    challenge = make_challenge(author)
    client = client_for(viewer)

    response = client.post(f"/challenges/{challenge.id}/submit", data=valid_form, files=[_pdf()],
                           follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == f"/challenges/{challenge.id}"

    page = client.get(response.headers["location"]).text
    assert "Your submission has been sent successfully!" in page

    [submission] = all_rows(ChallengeSubmission)
    assert submission.author_id == viewer.id
    assert submission.status == "submitted"
    assert submission.attachments[0]["original_name"] == "plan.pdf"
    assert [a.action for a in all_rows(AuditLog)] == ["challenge_participation"]
    assert {n.type for n in all_rows(AppNotification)} == {"challenge_submission", "submission_confirmation"}


def test_post_submission_with_discarded_attachment(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    client = client_for(make_user("viewer"))

    data = dict(valid_form, discard=["1"])
    client.post(f"/challenges/{challenge.id}/submit", data=data,
                files=[_pdf("keep.pdf"), _pdf("drop.pdf")], follow_redirects=False)

    [submission] = all_rows(ChallengeSubmission)
    assert [a["original_name"] for a in submission.attachments] == ["keep.pdf"]


def test_post_unticked_team_box_drops_members(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    client = client_for(make_user("viewer"))

    data = dict(valid_form, team_members="Leftover names")
    client.post(f"/challenges/{challenge.id}/submit", data=data, follow_redirects=False)

    [submission] = all_rows(ChallengeSubmission)
    assert submission.team_submission is False
    assert submission.team_members is None


def test_post_invalid_submission_rerenders_with_errors(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    data = dict(valid_form, title="short", team_submission="true")

    response = client_for(make_user("viewer")).post(f"/challenges/{challenge.id}/submit", data=data)
    assert response.status_code == 422
    assert "The submission title must be at least 10 characters." in response.text
    assert "The team members field is required." in response.text
    assert valid_form["description"] in response.text
    assert all_rows(ChallengeSubmission) == []


def test_post_rejected_attachment(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)

    response = client_for(make_user("viewer")).post(
        f"/challenges/{challenge.id}/submit", data=valid_form,
        files=[_pdf("fake.pdf", b"this is not a pdf")],
    )
    assert response.status_code == 422
    assert "File upload failed: File claims to be PDF but content validation failed" in response.text
    assert all_rows(ChallengeSubmission) == []


def test_post_twice_keeps_one_submission(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    client = client_for(make_user("viewer"))

    client.post(f"/challenges/{challenge.id}/submit", data=valid_form, follow_redirects=False)
    again = client.post(f"/challenges/{challenge.id}/submit", data=valid_form, follow_redirects=False)
    assert again.status_code == 303
    assert "You have already submitted to this challenge." in client.get(again.headers["location"]).text
    assert len(all_rows(ChallengeSubmission)) == 1


def test_post_to_closed_challenge(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author, status="judging")
    response = client_for(make_user("viewer")).post(f"/challenges/{challenge.id}/submit", data=valid_form)
    assert response.status_code == 404
    assert all_rows(ChallengeSubmission) == []


def test_submission_service_can_be_overridden(client_for, make_user, make_challenge, valid_form, tmp_path):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    files = FileSecurityService(storage_dir=tmp_path)
    app.dependency_overrides[get_submission_service] = lambda: SubmissionService(files=files)
    try:
        client_for(make_user("viewer")).post(f"/challenges/{challenge.id}/submit", data=valid_form,
                                             files=[_pdf()], follow_redirects=False)
    finally:
        app.dependency_overrides.clear()

    [submission] = all_rows(ChallengeSubmission)
    assert (tmp_path / submission.attachments[0]["path"]).is_file()


# --- detail and create ---

def test_detail_page(client_for, make_user, make_challenge):
    author = make_user("manager", roles="manager", display_name="Grace Wanjiru")
    challenge = make_challenge(author, requirements=["Working prototype"])
    client = client_for(make_user("viewer"))

    response = client.get(f"/challenges/{challenge.id}")
    assert response.status_code == 200
    assert "Working prototype" in response.text
    assert "Submit a Solution" in response.text
    assert client.get("/challenges/999").status_code == 404


def test_create_requires_capability(client_for, make_user):
    client = client_for(make_user("viewer"))
    assert client.get("/challenges/create").status_code == 403
    assert client.post("/challenges/create", data={"title": "x"}).status_code == 403


def test_create_challenge(client_for, make_user):
    developer = make_user("dev", roles="developer")
    client = client_for(developer)
    data = {
        "title": "Cut fuel use on feeder routes",
        "description": "Find practical ways to reduce diesel consumption on the feeder bus routes.",
        "category": "Sustainability",
        "status": "active",
        "deadline": (utcnow() + timedelta(days=30)).strftime("%Y-%m-%dT%H:%M"),
        "requirements": "Pilot plan\nCost estimate",
    }
    response = client.post("/challenges/create", data=data, follow_redirects=False)
    assert response.status_code == 303

    [challenge] = all_rows(Challenge)
    assert response.headers["location"] == f"/challenges/{challenge.id}"
    assert challenge.author_id == developer.id
    assert challenge.category == "sustainability"
    assert challenge.requirements == ["Pilot plan", "Cost estimate"]
    [entry] = all_rows(AuditLog)
    assert (entry.action, entry.entity_type, entry.entity_id) == ("challenge_creation", "Challenge", challenge.id)


def test_create_challenge_validation(client_for, make_user):
    client = client_for(make_user("dev", roles="developer"))
    response = client.post("/challenges/create", data={"title": "Tiny", "status": "draft"})
    assert response.status_code == 422
    assert "The challenge title must be at least 10 characters." in response.text
    assert all_rows(Challenge) == []


# --- notifications ---

def test_notifications_list_and_mark_read(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author, title="Smart pothole detection")
    viewer = make_user("viewer")
    client_for(viewer).post(f"/challenges/{challenge.id}/submit", data=valid_form, follow_redirects=False)

    manager_client = client_for(author)
    page = manager_client.get("/notifications/")
    assert page.status_code == 200
    assert "New Challenge Submission" in page.text

    [notification] = [n for n in all_rows(AppNotification) if n.user_id == author.id]
    assert client_for(viewer).post(f"/notifications/{notification.id}/read").status_code == 404
    response = manager_client.post(f"/notifications/{notification.id}/read", follow_redirects=False)
    assert response.status_code == 303
    [notification] = [n for n in all_rows(AppNotification) if n.user_id == author.id]
    assert notification.read_at is not None


# --- reviewer submissions list ---

def test_submissions_list_access(client_for, make_user, make_challenge):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    url = f"/challenges/{challenge.id}/submissions"

    anonymous = client_for().get(url, follow_redirects=False)
    assert anonymous.status_code == 303
    assert anonymous.headers["location"] == "/auth/login"
    assert client_for(make_user("viewer")).get(url).status_code == 403
    for username, roles in (("reviewer", "challenge_reviewer"), ("dev", "developer"), ("admin", "administrator")):
        assert client_for(make_user(username, roles=roles)).get(url).status_code == 200, roles
    assert client_for(author).get("/challenges/999/submissions").status_code == 404


def test_submissions_list_shows_entries(client_for, make_user, make_challenge, make_submission):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    make_submission(challenge, make_user("amina", display_name="Amina Otieno"), title="Sensor mesh")
    make_submission(challenge, make_user("brian", display_name="Brian Kamau"), title="Crowd reports")
    client = client_for(make_user("reviewer", roles="challenge_reviewer"))

    page = client.get(f"/challenges/{challenge.id}/submissions")
    assert "Sensor mesh" in page.text
    assert "Amina Otieno" in page.text
    assert "2 submissions" in page.text

    searched = client.get(f"/challenges/{challenge.id}/submissions", params={"search": "brian"})
    assert "Crowd reports" in searched.text
    assert "Sensor mesh" not in searched.text


def test_detail_page_links_submissions_for_reviewers(client_for, make_user, make_challenge):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    link = f'href="/challenges/{challenge.id}/submissions"'
    assert link in client_for(author).get(f"/challenges/{challenge.id}").text
    assert link not in client_for(make_user("viewer")).get(f"/challenges/{challenge.id}").text


def test_reviewer_notification_links_to_submissions(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    viewer = make_user("viewer")
    client_for(viewer).post(f"/challenges/{challenge.id}/submit", data=valid_form, follow_redirects=False)

    reviewer_page = client_for(author).get("/notifications/").text
    assert f'href="/challenges/{challenge.id}/submissions"' in reviewer_page
    submitter_page = client_for(viewer).get("/notifications/").text
    assert f'href="/challenges/{challenge.id}"' in submitter_page
    assert f'href="/challenges/{challenge.id}/submissions"' not in submitter_page


def test_attachment_download_permissions(client_for, make_user, make_challenge, valid_form):
    author = make_user("manager", roles="manager")
    challenge = make_challenge(author)
    submitter = make_user("viewer")
    content = b"%PDF-1.4\n%download test\n"
    client_for(submitter).post(f"/challenges/{challenge.id}/submit", data=valid_form,
                               files=[_pdf("plan.pdf", content)], follow_redirects=False)
    [submission] = all_rows(ChallengeSubmission)
    url = f"/challenges/{challenge.id}/submissions/{submission.id}/attachments/0"

    as_reviewer = client_for(make_user("reviewer", roles="challenge_reviewer")).get(url)
    assert as_reviewer.status_code == 200
    assert as_reviewer.content == content
    assert "plan.pdf" in as_reviewer.headers["content-disposition"]
    assert client_for(submitter).get(url).status_code == 200
    assert client_for(make_user("stranger")).get(url).status_code == 403
    assert client_for(author).get(url[:-1] + "5").status_code == 404
    assert client_for(author).get(f"/challenges/999/submissions/{submission.id}/attachments/0").status_code == 404
