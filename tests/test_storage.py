"""
Tests for blob storage adapters.
"""

import re
from unittest.mock import Mock, patch

import pytest
import requests

from cardscan.errors import StorageError
from cardscan.storage import LocalBlobStorage, SupabaseBlobStorage, build_object_key


class TestObjectKey:

    def test_key_format(self):
        key = build_object_key("business card.PNG", "user-1")

        assert re.fullmatch(r"cards/user-1/\d{13}-business_card\.png", key)

    def test_missing_user_and_extension(self):
        key = build_object_key("scan", None)

        assert key.startswith("cards/anonymous/")
        assert key.endswith("-scan.jpg")

    @pytest.mark.parametrize("file_name, base", [
        ("../../etc/passwd.png", "passwd"),
        ("my card (final)?.jpg", "my_card_final"),
        ("名片.png", "card"),
    ])
    def test_client_names_are_sanitised(self, file_name, base):
        key = build_object_key(file_name, "user/../x")

        owner, name = key.split("/")[1:]
        assert owner == "user_.._x"
        assert name.split("-", 1)[1].rsplit(".", 1)[0] == base
        assert key.count("/") == 2


class TestLocalBlobStorage:
    """Test cases for LocalBlobStorage."""

    @pytest.fixture
    def storage(self, tmp_path):
        return LocalBlobStorage(str(tmp_path / "blobs"))

    def test_upload_and_remove(self, storage, image_file):
        blob = storage.upload(image_file, "card.png", "user-1")

        assert storage.exists(blob.key)
        assert blob.public_url.startswith("file://")
        assert image_file.exists()

        result = storage.remove(blob.key)

        assert result.ok is True
        assert not storage.exists(blob.key)

    def test_remove_absent_blob(self, storage):
        result = storage.remove("cards/user-1/123-missing.png")

        assert result.ok is True

    def test_remove_empty_key(self, storage):
        assert storage.remove("").ok is True
        assert storage.remove(None).ok is True

    def test_missing_source_file(self, storage, tmp_path):
        with pytest.raises(StorageError):
            storage.upload(tmp_path / "nope.png", "nope.png", "user-1")

    def test_key_outside_root_is_refused(self, storage):
        result = storage.remove("../../etc/passwd")

        assert result.ok is False
        assert "Invalid blob key" in result.error


class TestSupabaseBlobStorage:
    """Supabase adapter against a mocked HTTP session."""

    @pytest.fixture
    def storage(self):
        with patch("cardscan.storage.requests.Session") as session_cls:
            session = Mock()
            session.headers = {}
            session_cls.return_value = session
            yield SupabaseBlobStorage("https://proj.supabase.co/", "service-key", "card-images")

    def test_requires_credentials(self):
        with pytest.raises(StorageError):
            SupabaseBlobStorage("", "")

    def test_auth_headers(self, storage):
        assert storage.session.headers["Authorization"] == "Bearer service-key"
        assert storage.session.headers["apikey"] == "service-key"

    def test_upload(self, storage, image_file):
        blob = storage.upload(image_file, "card.png", "user-1", "image/png")

        url = storage.session.post.call_args[0][0]
        kwargs = storage.session.post.call_args[1]
        assert url == f"https://proj.supabase.co/storage/v1/object/card-images/{blob.key}"
        assert kwargs["headers"]["Content-Type"] == "image/png"
        assert kwargs["data"] == image_file.read_bytes()
        assert blob.public_url == (
            f"https://proj.supabase.co/storage/v1/object/public/card-images/{blob.key}"
        )

    def test_upload_failure_raises(self, storage, image_file):
        storage.session.post.return_value.raise_for_status.side_effect = requests.exceptions.HTTPError("403")

        with pytest.raises(StorageError):
            storage.upload(image_file, "card.png", "user-1")

    def test_remove(self, storage):
        result = storage.remove("cards/user-1/1-card.png")

        assert result.ok is True
        storage.session.delete.assert_called_once()
        assert storage.session.delete.call_args[1]["json"] == {"prefixes": ["cards/user-1/1-card.png"]}

    def test_remove_failure_is_reported(self, storage):
        storage.session.delete.side_effect = requests.exceptions.ConnectionError("offline")

        result = storage.remove("cards/user-1/1-card.png")

        assert result.ok is False
        assert "offline" in result.error
