"""Test the OAuth broker: authorization URLs, state handling and code exchange."""

import base64
import hashlib
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from config import get_settings
from errors import (
    MissingCredentials,
    NoAccessToken,
    TokenExchangeFailed,
    UnsupportedPlatform,
    UpstreamAPIError,
)
from models import Platform
from services import oauth_service
from services.oauth_service import OAuthTokens, parse_token_response

settings = get_settings()


def query_of(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestPlatformConfiguration:

    def test_configured_platform(self):
        assert oauth_service.is_platform_configured("instagram") is True

    def test_unknown_platform(self):
        assert oauth_service.is_platform_configured("myspace") is False

    def test_missing_secret(self, monkeypatch):
        monkeypatch.setattr(settings, "tiktok_client_secret", "")
        assert oauth_service.is_platform_configured("tiktok") is False


class TestBuildAuthorizationUrl:

    @pytest.mark.parametrize("platform", [p.value for p in Platform])
    async def test_url_carries_required_params(self, platform, state_store):
        """Every configured platform gets client id, redirect uri, code flow and state."""
        url = await oauth_service.build_authorization_url(platform, "user-1")
        query = query_of(url)

        assert query["client_id"] == f"{platform}-client-id"
        assert query["redirect_uri"] == f"https://dash.example.com/oauth/{platform}/callback"
        assert query["response_type"] == "code"
        assert query["state"]
        assert query["state"] in state_store

    async def test_pending_attempt_remembers_user(self, state_store):
        url = await oauth_service.build_authorization_url("facebook", "user-42")
        pending = state_store[query_of(url)["state"]]

        assert pending.user_id == "user-42"
        assert pending.platform == "facebook"
        assert pending.code_verifier is None

    async def test_twitter_uses_pkce(self, state_store):
        url = await oauth_service.build_authorization_url("twitter", "user-1")
        query = query_of(url)
        verifier = state_store[query["state"]].code_verifier

        digest = hashlib.sha256(verifier.encode("ascii")).digest()
        expected = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
        assert query["code_challenge_method"] == "S256"
        assert query["code_challenge"] == expected

    async def test_youtube_requests_offline_access(self, state_store):
        query = query_of(await oauth_service.build_authorization_url("youtube", "user-1"))
        assert query["access_type"] == "offline"
        assert query["prompt"] == "consent"

    async def test_states_are_unique(self, state_store):
        first = query_of(await oauth_service.build_authorization_url("instagram", "user-1"))
        second = query_of(await oauth_service.build_authorization_url("instagram", "user-1"))
        assert first["state"] != second["state"]

    async def test_unconfigured_platform_fails(self, monkeypatch, state_store):
        monkeypatch.setattr(settings, "facebook_client_id", "")
        with pytest.raises(MissingCredentials):
            await oauth_service.build_authorization_url("facebook", "user-1")
        assert state_store == {}

    async def test_unknown_platform_fails(self, state_store):
        with pytest.raises(UnsupportedPlatform):
            await oauth_service.build_authorization_url("myspace", "user-1")


class TestConsumeState:

    async def test_state_is_single_use(self, state_store):
        url = await oauth_service.build_authorization_url("instagram", "user-1")
        state = query_of(url)["state"]

        assert (await oauth_service.consume_oauth_state(state, "instagram")).user_id == "user-1"
        assert await oauth_service.consume_oauth_state(state, "instagram") is None

    async def test_unknown_state(self, state_store):
        assert await oauth_service.consume_oauth_state("nope", "instagram") is None
        assert await oauth_service.consume_oauth_state(None, "instagram") is None

    async def test_state_for_another_platform(self, state_store):
        url = await oauth_service.build_authorization_url("instagram", "user-1")
        state = query_of(url)["state"]
        assert await oauth_service.consume_oauth_state(state, "twitter") is None


class TestExchangeCode:

    async def test_non_2xx_raises(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant"})

        async with mock_client(handler) as client:
            with pytest.raises(TokenExchangeFailed) as exc_info:
                await oauth_service.exchange_code_for_tokens("instagram", "bad-code", client=client)

        assert exc_info.value.status == 400
        assert exc_info.value.body == {"error": "invalid_grant"}

    async def test_instagram_form_post(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["body"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"access_token": "ig-token", "user_id": 1})

        async with mock_client(handler) as client:
            tokens = await oauth_service.exchange_code_for_tokens("instagram", "abc", client=client)

        assert tokens.access_token == "ig-token"
        assert seen["method"] == "POST"
        assert seen["body"]["code"] == ["abc"]
        assert seen["body"]["grant_type"] == ["authorization_code"]

    async def test_facebook_uses_get(self):
        def handler(request):
            assert request.method == "GET"
            assert request.url.params["code"] == "abc"
            return httpx.Response(200, json={"access_token": "fb-token", "expires_in": 3600})

        async with mock_client(handler) as client:
            tokens = await oauth_service.exchange_code_for_tokens("facebook", "abc", client=client)

        assert tokens.access_token == "fb-token"
        assert tokens.expires_in == 3600

    async def test_twitter_sends_verifier_with_basic_auth(self):
        def handler(request):
            body = parse_qs(request.content.decode())
            assert body["code_verifier"] == ["verifier-123"]
            assert request.headers["authorization"].startswith("Basic ")
            return httpx.Response(200, json={"access_token": "x-token", "refresh_token": "x-refresh"})

        async with mock_client(handler) as client:
            tokens = await oauth_service.exchange_code_for_tokens(
                "twitter", "abc", "verifier-123", client=client
            )

        assert tokens.refresh_token == "x-refresh"

    async def test_twitter_without_verifier_fails(self):
        with pytest.raises(TokenExchangeFailed):
            await oauth_service.exchange_code_for_tokens("twitter", "abc")

    async def test_success_without_token_raises(self):
        def handler(request):
            return httpx.Response(200, json={"token_type": "bearer"})

        async with mock_client(handler) as client:
            with pytest.raises(NoAccessToken):
                await oauth_service.exchange_code_for_tokens("youtube", "abc", client=client)


class TestParseTokenResponse:

    def test_tiktok_data_envelope(self):
        tokens = parse_token_response(
            Platform.TIKTOK,
            {"data": {"access_token": "tt", "refresh_token": "tt-r", "expires_in": "86400"}},
        )
        assert tokens == OAuthTokens(access_token="tt", refresh_token="tt-r", expires_in=86400)

    def test_tiktok_flat_body(self):
        tokens = parse_token_response(Platform.TIKTOK, {"access_token": "tt", "open_id": "o1"})
        assert tokens.access_token == "tt"


class TestIdentity:

    def test_instagram_handle(self):
        assert oauth_service.extract_identity("instagram", {"id": "17", "username": "kate"}) == ("17", "@kate")

    def test_twitter_data_envelope(self):
        info = {"data": {"id": "99", "username": "jack"}}
        assert oauth_service.extract_identity("twitter", info) == ("99", "@jack")

    def test_facebook_page_name(self):
        assert oauth_service.extract_identity("facebook", {"id": "5", "name": "Acme"}) == ("5", "Acme")

    def test_youtube_channel_title(self):
        info = {"items": [{"id": "UC1", "snippet": {"title": "Acme TV"}}]}
        assert oauth_service.extract_identity("youtube", info) == ("UC1", "Acme TV")

    def test_tiktok_user_envelope(self):
        info = {"data": {"user": {"open_id": "o1", "display_name": "dancer"}}}
        assert oauth_service.extract_identity("tiktok", info) == ("o1", "@dancer")

    @pytest.mark.parametrize("platform, info", [
        ("instagram", {"username": "kate"}),
        ("twitter", {"data": {"username": "jack"}}),
        ("tiktok", {"data": {"user": {"display_name": "dancer"}}}),
        ("youtube", {"items": []}),
    ])
    def test_missing_account_id_is_rejected(self, platform, info):
        with pytest.raises(UpstreamAPIError):
            oauth_service.extract_identity(platform, info)

    async def test_validate_token_on_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("boom", request=request)

        async with mock_client(handler) as client:
            assert await oauth_service.validate_access_token("instagram", "t", client=client) is False

    async def test_validate_token_ok(self):
        def handler(request):
            return httpx.Response(200, json={"id": "1", "username": "kate"})

        async with mock_client(handler) as client:
            assert await oauth_service.validate_access_token("instagram", "t", client=client) is True
