"""Object storage and watermark client tests"""
import pytest
from unittest.mock import MagicMock, Mock, patch

from app.core.config import settings
from app.services import watermark_service
from app.services.storage.s3_service import S3Service


@pytest.fixture
def s3_service():
    with patch.object(settings, "S3_BUCKET_NAME", "cameo-test"), \
            patch.object(settings, "S3_PUBLIC_URL", "https://cdn.example.com"), \
            patch("app.services.storage.s3_service.boto3.client") as mock_client:
        service = S3Service()
        service.s3_client = mock_client.return_value
        yield service


@pytest.mark.high
class TestS3Service:
    """Test S3-compatible storage"""

    def test_missing_bucket_rejected(self):
        with patch.object(settings, "S3_BUCKET_NAME", ""):
            with pytest.raises(ValueError):
                S3Service()

    def test_put_returns_public_url(self, s3_service):
        url = s3_service.put(b"data", "generations/a b.jpg", "image/jpeg")
        assert url == "https://cdn.example.com/generations/a%20b.jpg"
        s3_service.s3_client.put_object.assert_called_once_with(
            Bucket="cameo-test", Key="generations/a b.jpg", Body=b"data", ContentType="image/jpeg"
        )

    def test_put_empty_key_rejected(self, s3_service):
        with pytest.raises(ValueError):
            s3_service.put(b"data", "", "image/jpeg")

    def test_get_own_object_uses_api(self, s3_service):
        body = MagicMock()
        body.read.return_value = b"stored"
        s3_service.s3_client.get_object.return_value = {"Body": body}

        assert s3_service.get("https://cdn.example.com/generations/x.jpg") == b"stored"
        s3_service.s3_client.get_object.assert_called_once_with(Bucket="cameo-test", Key="generations/x.jpg")

    def test_get_external_url_uses_http(self, s3_service):
        response = Mock(content=b"remote")
        with patch("app.services.storage.s3_service.httpx.get", return_value=response) as mock_get:
            assert s3_service.get("https://replicate.delivery/out.jpg") == b"remote"
        mock_get.assert_called_once()

    def test_get_unsupported_scheme(self, s3_service):
        with pytest.raises(ValueError):
            s3_service.get("ftp://example.com/x.jpg")


@pytest.mark.high
class TestWatermarkService:
    """Test the watermark service client"""

    def test_not_configured(self):
        with patch.object(settings, "WATERMARK_SERVICE_URL", ""):
            with pytest.raises(ValueError):
                watermark_service.apply("https://cdn.example.com/x.jpg", "gen-1")

    def test_apply_posts_to_service(self):
        response = Mock()
        response.json.return_value = {"url": "https://cdn.example.com/x-wm.jpg"}
        with patch.object(settings, "WATERMARK_SERVICE_URL", "https://watermark.internal/"), \
                patch("app.services.watermark_service.httpx.post", return_value=response) as mock_post:
            url = watermark_service.apply("https://cdn.example.com/x.jpg", "gen-1")

        assert url == "https://cdn.example.com/x-wm.jpg"
        assert mock_post.call_args.args[0] == "https://watermark.internal/apply"
        assert mock_post.call_args.kwargs["json"]["content_id"] == "gen-1"

    def test_remove_without_url_in_response(self):
        response = Mock()
        response.json.return_value = {}
        with patch.object(settings, "WATERMARK_SERVICE_URL", "https://watermark.internal"), \
                patch("app.services.watermark_service.httpx.post", return_value=response):
            with pytest.raises(ValueError):
                watermark_service.remove("https://cdn.example.com/x.jpg", "gen-1")
