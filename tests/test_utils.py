import datetime

import pytest
from pydantic import ValidationError

from core.models import FileType, StorageQuota, UpdateFileUsersRequest, email_adapter
from core.revalidation import etag_for, path_revision, revalidate_path
from core.utils import (
    calculate_percentage, construct_download_url, convert_file_size, format_date_time,
    get_file_type, get_file_types_params, get_usage_summary, parse_sort,
    session_id_from_token,
)
from tests.conftest import make_access_token

MIB = 1024 * 1024


@pytest.mark.parametrize("filename,expected", [
    ("report.PDF", (FileType.DOCUMENT, "pdf")),
    ("holiday.jpeg", (FileType.IMAGE, "jpeg")),
    ("clip.mkv", (FileType.VIDEO, "mkv")),
    ("song.flac", (FileType.AUDIO, "flac")),
    ("archive.tar.gz", (FileType.OTHER, "gz")),
    ("Makefile", (FileType.OTHER, "")),
])
def test_get_file_type(filename, expected):
    assert get_file_type(filename) == expected


def test_get_file_types_params_pages():
    assert get_file_types_params("documents") == [FileType.DOCUMENT]
    assert get_file_types_params("media") == [FileType.VIDEO, FileType.AUDIO]
    with pytest.raises(ValueError):
        get_file_types_params("spreadsheets")


@pytest.mark.parametrize("sort,expected", [
    ("$createdAt-desc", ("created_at", False)),
    ("$updatedAt-asc", ("updated_at", True)),
    ("name-asc", ("name", True)),
    ("size-desc", ("size", False)),
    ("size-sideways", ("size", False)),
])
def test_parse_sort(sort, expected):
    assert parse_sort(sort) == expected


def test_parse_sort_rejects_unknown_field():
    with pytest.raises(ValueError, match="owner"):
        parse_sort("owner-asc")


def test_convert_file_size():
    assert convert_file_size(512) == "512 Bytes"
    assert convert_file_size(1536) == "1.5 KB"
    assert convert_file_size(10 * MIB) == "10.0 MB"
    assert convert_file_size(3 * 1024 * MIB, digits=2) == "3.00 GB"


def test_calculate_percentage_uses_configured_capacity_by_default(monkeypatch):
    from core.config import settings
    monkeypatch.setattr(settings, "TOTAL_STORAGE_BYTES", 200)
    assert calculate_percentage(50) == 25.0
    assert calculate_percentage(1, 3) == 33.33


def test_format_date_time():
    assert format_date_time(None) == "-"
    assert format_date_time(datetime.datetime(2024, 10, 3, 0, 5)) == "12:05am, 3 Oct"
    assert format_date_time(datetime.datetime(2024, 10, 3, 14, 30)) == "2:30pm, 3 Oct"


def test_usage_summary_merges_video_and_audio():
    quota = StorageQuota(all=100 * MIB)
    older = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)
    newer = datetime.datetime(2024, 2, 1, tzinfo=datetime.timezone.utc)
    quota.add(FileType.VIDEO, 3 * MIB, older)
    quota.add("audio", 2 * MIB, newer)
    quota.add(FileType.DOCUMENT, MIB, older)

    cards = {item.title: item for item in get_usage_summary(quota)}

    assert list(cards) == ["Documents", "Images", "Media", "Others"]
    assert cards["Media"].size == 5 * MIB
    assert cards["Media"].latest_date == newer
    assert cards["Images"].size == 0 and cards["Images"].latest_date is None
    assert quota.used == 6 * MIB


def test_storage_quota_rejects_unknown_category():
    quota = StorageQuota()
    with pytest.raises(ValueError):
        quota.add("spreadsheet", 10, None)
    assert quota.used == 0


def test_construct_download_url():
    assert construct_download_url("https://x/obj", "my file.pdf") == "https://x/obj?download=my%20file.pdf"
    assert construct_download_url("https://x/obj?t=1", "a.txt") == "https://x/obj?t=1&download=a.txt"


def test_share_request_normalises_and_validates_emails():
    assert UpdateFileUsersRequest(emails=[" a@b.co ", ""]).emails == ["a@b.co"]
    assert UpdateFileUsersRequest().emails == []


@pytest.mark.parametrize("address", ["broken", "a@b.co,owner.neq.x", 'a"b@x.co', "x@(evil).co", "two@@x.co"])
def test_share_request_rejects_addresses_that_are_not_plain_emails(address):
    with pytest.raises(ValidationError):
        UpdateFileUsersRequest(emails=["ok@example.com", address])


def test_email_adapter():
    assert email_adapter.validate_python("ada@example.com") == "ada@example.com"
    with pytest.raises(ValidationError):
        email_adapter.validate_python('a"b@x.co')


def test_session_id_from_token():
    assert session_id_from_token(make_access_token("acc-1", "sess-9")) == "sess-9"
    assert session_id_from_token("garbage") is None


def test_etag_changes_when_path_is_revalidated():
    before = etag_for("/images", b"payload")
    assert etag_for("/images", b"payload") == before
    assert etag_for("/images", b"other payload") != before

    revision = path_revision("images")
    assert revalidate_path("/images/") == revision + 1
    assert etag_for("/images", b"payload") != before
