"""Tests for the GitHub collaborator client."""

import json
import logging

import httpx
import pytest

from teamsync.client import ChangeResult, GitHubCollaboratorClient, GitHubConfig
from teamsync.engine import ReconciliationEngine
from teamsync.errors import ConfigurationError, RemoteAPIError, RemoteAuthError, RemoteConnectionError
from teamsync.models import Member, Permission, Role
from teamsync.repository import RepositoryRef

API = "https://api.example.test"
REPO = RepositoryRef("org", "proj1")


def _make_client(routes):
    """Build a client whose requests are answered from ``routes``.

    ``routes`` maps ``(method, path)`` to a response or a callable taking the
    request. Every request is recorded in the returned list.
    """
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        route = routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        return route(request) if callable(route) else route

    http_client = httpx.Client(transport=httpx.MockTransport(handler))
    client = GitHubCollaboratorClient(GitHubConfig(token="t0ken", api_url=API), http_client=http_client)
    return client, requests


# =============================================================================
# Construction / Auth
# =============================================================================


class TestClientSetup:
    """Tests for configuration and authentication."""

    def test_empty_token_rejected(self):
        with pytest.raises(ConfigurationError):
            GitHubCollaboratorClient(GitHubConfig(token="  "))

    def test_authenticated_login_sends_bearer(self):
        client, requests = _make_client({("GET", "/user"): httpx.Response(200, json={"login": "sync-bot"})})

        assert client.authenticated_login() == "sync-bot"
        assert requests[0].headers["Authorization"] == "Bearer t0ken"
        assert requests[0].headers["Accept"] == "application/vnd.github+json"

    def test_401_raises_auth_error(self):
        client, _ = _make_client({("GET", "/user"): httpx.Response(401, json={"message": "Bad credentials"})})

        with pytest.raises(RemoteAuthError, match="Bad credentials") as exc:
            client.authenticated_login()
        assert exc.value.status_code == 401

    def test_network_error_raises_connection_error(self):
        def boom(request):
            raise httpx.ConnectError("connection refused", request=request)

        client, _ = _make_client({("GET", "/user"): boom})

        with pytest.raises(RemoteConnectionError):
            client.authenticated_login()

    def test_repository_lookup_404(self):
        client, _ = _make_client({})

        with pytest.raises(RemoteAPIError) as exc:
            client.get_repository(REPO)
        assert exc.value.status_code == 404

    def test_injected_http_client_left_open(self):
        http_client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
        with GitHubCollaboratorClient(GitHubConfig(token="t"), http_client=http_client):
            pass
        assert not http_client.is_closed


# =============================================================================
# Listing
# =============================================================================


class TestListCollaborators:
    """Tests for list_collaborators."""

    def test_paginates_and_merges_invitations(self):
        page2 = f"{API}/repos/org/proj1/collaborators?affiliation=direct&per_page=100&page=2"

        def collaborators(request):
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json=[{"login": "carol"}])
            assert request.url.params["affiliation"] == "direct"
            return httpx.Response(
                200,
                json=[{"login": "alice"}, {"login": "bob"}],
                headers={"Link": f'<{page2}>; rel="next"'},
            )

        client, requests = _make_client({
            ("GET", "/repos/org/proj1/collaborators"): collaborators,
            ("GET", "/repos/org/proj1/invitations"): httpx.Response(
                200, json=[{"id": 7, "invitee": {"login": "dave"}}, {"id": 8, "invitee": {"login": "Alice"}}]
            ),
        })

        assert client.list_collaborators(REPO) == {"alice", "bob", "carol", "dave"}
        assert len(requests) == 3

    def test_invitation_listing_refused_is_tolerated(self, caplog):
        client, _ = _make_client({
            ("GET", "/repos/org/proj1/collaborators"): httpx.Response(200, json=[{"login": "alice"}]),
            ("GET", "/repos/org/proj1/invitations"): httpx.Response(403, json={"message": "Must have admin rights"}),
        })

        with caplog.at_level(logging.WARNING, logger="teamsync"):
            assert client.list_collaborators(REPO) == {"alice"}
        assert "pending invitations" in caplog.text

    def test_invitation_listing_server_error_raises(self):
        client, _ = _make_client({
            ("GET", "/repos/org/proj1/collaborators"): httpx.Response(200, json=[{"login": "alice"}]),
            ("GET", "/repos/org/proj1/invitations"): httpx.Response(500, json={"message": "Server Error"}),
        })

        with pytest.raises(RemoteAPIError) as exc:
            client.list_collaborators(REPO)
        assert exc.value.status_code == 500

    def test_invitation_listing_network_error_raises(self):
        def boom(request):
            raise httpx.ConnectError("connection reset", request=request)

        client, _ = _make_client({
            ("GET", "/repos/org/proj1/collaborators"): httpx.Response(200, json=[{"login": "alice"}]),
            ("GET", "/repos/org/proj1/invitations"): boom,
        })

        with pytest.raises(RemoteConnectionError):
            client.list_collaborators(REPO)

    def test_collaborator_listing_failure_raises(self):
        client, _ = _make_client({
            ("GET", "/repos/org/proj1/collaborators"): httpx.Response(500, json={"message": "oops"}),
        })

        with pytest.raises(RemoteAPIError) as exc:
            client.list_collaborators(REPO)
        assert exc.value.status_code == 500


# =============================================================================
# Mutations
# =============================================================================


class TestAddCollaborator:
    """Tests for add_collaborator."""

    def test_invitation_created(self):
        client, requests = _make_client({
            ("PUT", "/repos/org/proj1/collaborators/alice"): httpx.Response(201, json={"id": 1}),
        })

        assert client.add_collaborator(REPO, "alice", Permission.PUSH) == ChangeResult.APPLIED
        assert json.loads(requests[0].content) == {"permission": "push"}

    def test_already_collaborator_is_noop(self):
        client, _ = _make_client({
            ("PUT", "/repos/org/proj1/collaborators/alice"): httpx.Response(204),
        })

        assert client.add_collaborator(REPO, "alice", Permission.PULL) == ChangeResult.NOOP

    def test_validation_error_raises(self):
        client, _ = _make_client({
            ("PUT", "/repos/org/proj1/collaborators/ghost"): httpx.Response(
                422, json={"message": "Validation Failed"}
            ),
        })

        with pytest.raises(RemoteAPIError, match="422") as exc:
            client.add_collaborator(REPO, "ghost", Permission.PUSH)
        assert not isinstance(exc.value, RemoteAuthError)


class TestRemoveCollaborator:
    """Tests for remove_collaborator."""

    def test_removes_collaborator(self):
        client, requests = _make_client({
            ("GET", "/repos/org/proj1/invitations"): httpx.Response(200, json=[]),
            ("DELETE", "/repos/org/proj1/collaborators/alice"): httpx.Response(204),
        })

        assert client.remove_collaborator(REPO, "alice") == ChangeResult.APPLIED
        assert [r.method for r in requests] == ["GET", "DELETE"]

    def test_cancels_pending_invitation(self):
        client, requests = _make_client({
            ("GET", "/repos/org/proj1/invitations"): httpx.Response(
                200, json=[{"id": 42, "invitee": {"login": "Dave"}}]
            ),
            ("DELETE", "/repos/org/proj1/invitations/42"): httpx.Response(204),
            ("DELETE", "/repos/org/proj1/collaborators/dave"): httpx.Response(404, json={"message": "Not Found"}),
        })

        assert client.remove_collaborator(REPO, "dave") == ChangeResult.APPLIED
        assert ("DELETE", "/repos/org/proj1/invitations/42") in [(r.method, r.url.path) for r in requests]

    def test_not_a_collaborator_is_noop(self):
        client, _ = _make_client({
            ("GET", "/repos/org/proj1/invitations"): httpx.Response(200, json=[]),
        })

        assert client.remove_collaborator(REPO, "nobody") == ChangeResult.NOOP

    def test_permission_denied_raises(self):
        client, _ = _make_client({
            ("GET", "/repos/org/proj1/invitations"): httpx.Response(200, json=[]),
            ("DELETE", "/repos/org/proj1/collaborators/alice"): httpx.Response(
                403, json={"message": "Must have admin rights"}
            ),
        })

        with pytest.raises(RemoteAPIError, match="admin rights"):
            client.remove_collaborator(REPO, "alice")

    def test_invitation_lookup_failure_raises(self):
        client, requests = _make_client({
            ("GET", "/repos/org/proj1/invitations"): httpx.Response(502, json={"message": "Bad Gateway"}),
        })

        with pytest.raises(RemoteAPIError) as exc:
            client.remove_collaborator(REPO, "mallory")
        assert exc.value.status_code == 502
        assert [r.method for r in requests] == ["GET"]


# =============================================================================
# Engine over HTTP
# =============================================================================


def _github_routes(invitations):
    return {
        ("GET", "/user"): httpx.Response(200, json={"login": "sync-bot"}),
        ("GET", "/repos/org/proj1"): httpx.Response(200, json={"full_name": "org/proj1"}),
        ("GET", "/repos/org/proj1/collaborators"): httpx.Response(
            200, json=[{"login": "alice"}, {"login": "eve"}]
        ),
        ("GET", "/repos/org/proj1/invitations"): invitations,
    }


class TestEngineWithGitHubClient:
    """Tests for reconciliation passes driven through the HTTP client."""

    def test_full_sync_aborts_when_invitations_unavailable(self, alice, carol):
        client, requests = _make_client(_github_routes(httpx.Response(500, json={"message": "Server Error"})))

        with pytest.raises(RemoteAPIError):
            ReconciliationEngine(client).reconcile_full("org/proj1", {alice, carol})
        assert [r.method for r in requests if r.method != "GET"] == []

    def test_full_sync_aborts_on_network_error(self, alice, carol):
        def boom(request):
            raise httpx.ConnectError("connection reset", request=request)

        client, requests = _make_client(_github_routes(boom))

        with pytest.raises(RemoteConnectionError):
            ReconciliationEngine(client).reconcile_full("org/proj1", {alice, carol})
        assert [r.method for r in requests if r.method != "GET"] == []

    def test_remove_fails_when_invitations_unavailable(self):
        mallory = Member("M", Role.DEV, "mallory")
        client, requests = _make_client(_github_routes(httpx.Response(500, json={"message": "Server Error"})))

        report = ReconciliationEngine(client).reconcile_team_edit("org/proj1", {mallory}, set())

        assert [o.username for o in report.failed] == ["mallory"]
        assert report.removes_succeeded == 0
        assert [r.method for r in requests if r.method != "GET"] == []
