"""Tests for dynamic client registration."""
import pytest

from oauth.errors import ErrorKind, OAuthError


class TestClientRegistry:
    @pytest.mark.asyncio
    async def test_register_defaults(self, registry, store, clock):
        result = await registry.register({})

        assert result["client_id"].startswith("client_")
        assert result["grant_types"] == ["authorization_code"]
        assert result["response_types"] == ["code"]
        assert result["token_endpoint_auth_method"] == "none"
        assert result["client_id_issued_at"] == int(clock.now.timestamp())
        assert "client_name" not in result
        assert result["client_id"] in store.clients

    @pytest.mark.asyncio
    async def test_unsupported_grant_types_are_filtered(self, registry, store):
        result = await registry.register({
            "client_name": "Claude",
            "redirect_uris": ["http://localhost:3000/callback"],
            "grant_types": ["authorization_code", "refresh_token", "client_credentials"],
        })

        assert result["grant_types"] == ["authorization_code"]
        assert result["client_name"] == "Claude"
        assert result["redirect_uris"] == ["http://localhost:3000/callback"]
        assert store.clients[result["client_id"]].grant_types == ["authorization_code"]

    @pytest.mark.asyncio
    async def test_only_unsupported_grant_types_rejected(self, registry, store):
        result = await registry.register({"grant_types": ["refresh_token", "implicit"]})

        assert isinstance(result, OAuthError)
        assert result.error == "invalid_client_metadata"
        assert result.kind == ErrorKind.CLIENT
        assert result.status_code == 400
        assert store.clients == {}

    @pytest.mark.asyncio
    async def test_response_type_code_required(self, registry):
        result = await registry.register({"response_types": ["token"]})

        assert isinstance(result, OAuthError)
        assert result.error == "invalid_client_metadata"

    @pytest.mark.asyncio
    async def test_extra_fields_ignored(self, registry):
        result = await registry.register({"logo_uri": "https://x", "token_endpoint_auth_method": "client_secret_post"})

        assert result["token_endpoint_auth_method"] == "none"
        assert "logo_uri" not in result

    @pytest.mark.asyncio
    async def test_non_object_request_rejected(self, registry):
        result = await registry.register(["not", "an", "object"])

        assert isinstance(result, OAuthError)
        assert result.error == "invalid_request"

    @pytest.mark.asyncio
    async def test_each_registration_gets_new_client_id(self, registry):
        first = await registry.register({})
        second = await registry.register({})
        assert first["client_id"] != second["client_id"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("metadata", [
        {"response_types": "code"},
        {"grant_types": "authorization_code"},
        {"redirect_uris": "http://localhost:3000/callback"},
        {"redirect_uris": ["http://localhost:3000/callback", 7]},
        {"client_name": ["Claude"]},
    ])
    async def test_malformed_metadata_rejected(self, registry, store, metadata):
        result = await registry.register(metadata)

        assert isinstance(result, OAuthError)
        assert result.error == "invalid_client_metadata"
        assert store.clients == {}
