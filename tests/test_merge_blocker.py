import json
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

import pytest

from delorean.merge_blocker import (
    MERGE_BLOCKER_LABEL,
    Issue,
    IssueRequest,
    IssuesService,
    MergeBlockerError,
    RepoInfo,
    do_merge_blocker,
    search_merge_blockers,
)

REPO = RepoInfo(owner="integr8ly", repo="integreatly-operator")


def to_issue(request):
    return Issue(
        title=request.title,
        state=request.state,
        labels=list(request.labels),
        html_url="http://testurl",
    )


class FakeIssues:
    def __init__(self, list_func=None, create_func=None, edit_func=None):
        self.list_func = list_func
        self.create_func = create_func
        self.edit_func = edit_func
        self.list_calls = []
        self.created = []
        self.edited = []

    def list_by_repo(self, owner, repo, state, labels):
        if self.list_func is None:
            raise AssertionError("list_by_repo is not defined")
        self.list_calls.append((owner, repo, state, labels))
        return self.list_func()

    def create(self, owner, repo, request):
        if self.create_func is None:
            raise AssertionError("create is not defined")
        self.created.append(request)
        return self.create_func(request)

    def edit(self, owner, repo, number, request):
        if self.edit_func is None:
            raise AssertionError("edit is not defined")
        self.edited.append((number, request))
        return self.edit_func(request)


def failing(*_args):
    raise RuntimeError("unexpected error")


def existing_blocker():
    return [Issue(title="release blocker|branch:master", html_url="http://test", number=1)]


def test_search_matching_issue_found():
    client = FakeIssues(list_func=lambda: [Issue(title="release blocker|branch:master")])
    issue = search_merge_blockers(client, REPO, "master")
    assert issue.title == "release blocker|branch:master"
    assert client.list_calls == [(REPO.owner, REPO.repo, "open", [MERGE_BLOCKER_LABEL])]


def test_search_matching_issue_not_found():
    client = FakeIssues(list_func=lambda: [Issue(title="master|branch:release-v2.1")])
    assert search_merge_blockers(client, REPO, "master") is None


def test_search_error():
    client = FakeIssues(list_func=failing)
    with pytest.raises(RuntimeError, match="unexpected error"):
        search_merge_blockers(client, REPO, "master")


def test_create_ok():
    client = FakeIssues(list_func=lambda: [], create_func=to_issue)
    issue = do_merge_blocker(client, REPO, "master", delete=False)
    assert issue.title == "Merge Blocker|branch:master"
    assert issue.state == "open"
    assert issue.labels == [MERGE_BLOCKER_LABEL]
    assert len(client.created) == 1


def test_issue_already_exists():
    client = FakeIssues(list_func=existing_blocker)
    issue = do_merge_blocker(client, REPO, "master", delete=False)
    assert issue.html_url == "http://test"
    assert client.created == []


def test_create_error():
    client = FakeIssues(list_func=lambda: [], create_func=failing)
    with pytest.raises(RuntimeError):
        do_merge_blocker(client, REPO, "master", delete=False)


def test_close_ok():
    client = FakeIssues(list_func=existing_blocker, edit_func=to_issue)
    issue = do_merge_blocker(client, REPO, "master", delete=True)
    assert issue.state == "closed"
    assert issue.title == "release blocker|branch:master"
    number, request = client.edited[0]
    assert number == 1
    assert request.labels == [MERGE_BLOCKER_LABEL]


def test_issue_not_exists():
    client = FakeIssues(list_func=lambda: [])
    with pytest.raises(MergeBlockerError, match="no merge blocker issue for the given branch: master"):
        do_merge_blocker(client, REPO, "master", delete=True)


def test_close_error():
    client = FakeIssues(list_func=existing_blocker, edit_func=failing)
    with pytest.raises(RuntimeError):
        do_merge_blocker(client, REPO, "master", delete=True)


class _Handler(BaseHTTPRequestHandler):
    requests = []

    def _reply(self, payload):
        body = json.dumps(payload).encode()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self):
        self.requests.append(("GET", self.path, self.headers.get("Authorization"), None))
        self._reply([
            {
                "title": "Merge Blocker|branch:master",
                "number": 7,
                "state": "open",
                "labels": [{"name": MERGE_BLOCKER_LABEL}],
                "html_url": "http://issue",
            }
        ])

    def do_POST(self):
        length = int(self.headers.get("Content-Length", 0))
        body = json.loads(self.rfile.read(length))
        self.requests.append(("POST", self.path, self.headers.get("Authorization"), body))
        self._reply({**body, "number": 8, "labels": [{"name": n} for n in body["labels"]]})

    def log_message(self, *_args):
        pass


@pytest.fixture
def api_server():
    _Handler.requests = []
    server = HTTPServer(("127.0.0.1", 0), _Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield f"http://127.0.0.1:{server.server_address[1]}", _Handler.requests
    server.shutdown()
    server.server_close()


def test_issues_service_list_by_repo(api_server):
    base_url, requests = api_server
    service = IssuesService("token", base_url=base_url)
    issues = service.list_by_repo("org", "repo", "open", [MERGE_BLOCKER_LABEL])
    assert issues == [
        Issue(
            title="Merge Blocker|branch:master",
            number=7,
            state="open",
            labels=[MERGE_BLOCKER_LABEL],
            html_url="http://issue",
        )
    ]
    method, path, auth, _ = requests[0]
    assert method == "GET"
    assert path == "/repos/org/repo/issues?state=open&labels=tide%2Fmerge-blocker"
    assert auth == "token token"


def test_issues_service_create(api_server):
    base_url, requests = api_server
    service = IssuesService("token", base_url=base_url)
    request = IssueRequest(title="Merge Blocker|branch:dev", labels=[MERGE_BLOCKER_LABEL], state="open")
    issue = service.create("org", "repo", request)
    assert issue.number == 8
    assert issue.title == "Merge Blocker|branch:dev"
    assert requests[0][3] == {
        "title": "Merge Blocker|branch:dev",
        "labels": [MERGE_BLOCKER_LABEL],
        "state": "open",
    }