"""Auth provider and storage client tests (HTTP calls mocked)"""
import pytest
import httpx
from unittest.mock import Mock, patch

from app.core.exceptions import StorageError, AccountDeletionError
from app.services.auth_service import get_user_from_token, delete_user, token_fingerprint
from app.services.storage_service import upload_image, public_url, _encode_object_key_for_url

SUPABASE_USER = {"id": "user-uuid-1", "email": "writer@example.com", "user_metadata": {"full_name": "Writer"}}


@pytest.mark.critical
class TestAuthService:
    """Access token validation against the auth provider"""

    @patch('app.services.auth_service.httpx.get')
    def test_valid_token_returns_user_and_caches(self, mock_get, mock_redis):
        mock_get.return_value = Mock(status_code=200, json=Mock(return_value=SUPABASE_USER))

        first = get_user_from_token("access-token")
        second = get_user_from_token("access-token")

        assert first.id == "user-uuid-1"
        assert first.user_metadata == {"full_name": "Writer"}
        assert second == first
        assert mock_get.call_count == 1
        assert mock_redis.ttl(f"cache:auth:{token_fingerprint('access-token')}") > 0

    @patch('app.services.auth_service.httpx.get')
    def test_invalid_token_returns_none(self, mock_get, mock_redis):
        mock_get.return_value = Mock(status_code=401)

        assert get_user_from_token("expired-token") is None

    @patch('app.services.auth_service.httpx.get', side_effect=httpx.ConnectError("unreachable"))
    def test_unreachable_provider_returns_none(self, mock_get, mock_redis):
        assert get_user_from_token("access-token") is None

    @patch('app.services.auth_service.get_cached_auth_user', side_effect=ConnectionError("redis down"))
    @patch('app.services.auth_service.httpx.get')
    def test_cache_failure_falls_back_to_provider(self, mock_get, mock_cache):
        mock_get.return_value = Mock(status_code=200, json=Mock(return_value=SUPABASE_USER))

        with patch('app.services.auth_service.set_cached_auth_user', side_effect=ConnectionError("redis down")):
            user = get_user_from_token("access-token")

        assert user.email == "writer@example.com"

    @patch('app.services.auth_service.httpx.delete')
    def test_delete_user_invalidates_cache(self, mock_delete, mock_redis):
        mock_redis.set(f"cache:auth:{token_fingerprint('access-token')}", "{}")
        mock_delete.return_value = Mock(status_code=200)

        delete_user("user-uuid-1", access_token="access-token")

        assert mock_redis.get(f"cache:auth:{token_fingerprint('access-token')}") is None

    @patch('app.services.auth_service.httpx.delete')
    def test_delete_user_refused(self, mock_delete):
        mock_delete.return_value = Mock(status_code=500, text="error")

        with pytest.raises(AccountDeletionError):
            delete_user("user-uuid-1")


@pytest.mark.high
class TestStorageService:
    """Generated image uploads"""

    def test_object_key_segments_are_encoded(self):
        assert _encode_object_key_for_url("user 1/image#1.png") == "user%201/image%231.png"

    def test_public_url(self):
        url = public_url("user-uuid-1/abc.png", bucket="generated-images")
        assert url.endswith("/storage/v1/object/public/generated-images/user-uuid-1/abc.png")

    @patch('app.services.storage_service.httpx.post')
    def test_upload_returns_public_url(self, mock_post):
        mock_post.return_value = Mock(status_code=200)

        url = upload_image("user-uuid-1", "aGVsbG8=")

        assert "/object/public/generated-images/user-uuid-1/" in url
        args, kwargs = mock_post.call_args
        assert kwargs["content"] == b"hello"
        assert kwargs["headers"]["Content-Type"] == "image/png"

    def test_invalid_base64_raises(self):
        with pytest.raises(StorageError):
            upload_image("user-uuid-1", "not base64!")

    @patch('app.services.storage_service.httpx.post')
    def test_upload_http_error_raises(self, mock_post):
        mock_post.return_value = Mock(status_code=403, text="forbidden")

        with pytest.raises(StorageError):
            upload_image("user-uuid-1", "aGVsbG8=")

    @patch('app.services.storage_service.httpx.post', side_effect=httpx.ReadTimeout("slow"))
    def test_upload_timeout_raises(self, mock_post):
        with pytest.raises(StorageError):
            upload_image("user-uuid-1", "aGVsbG8=")
