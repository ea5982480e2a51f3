from __future__ import annotations

import pytest
from pydantic import ValidationError

from cloud_storage_service.domain.locators import (
    BlobStorageLocator,
    GenericLocator,
    S3Locator,
    locator_type_name,
    parse_locator,
)
from cloud_storage_service.domain.restore import build_restore_work_item_id


def test_s3_locator_parses_virtual_hosted_url_with_region() -> None:
    locator = S3Locator(url="https://my-bucket.s3.eu-west-1.amazonaws.com/path/to/file%20a.txt")

    assert locator.bucket == "my-bucket"
    assert locator.key == "path/to/file a.txt"
    assert locator.region == "eu-west-1"


def test_s3_locator_parses_path_style_url() -> None:
    locator = S3Locator(url="https://s3.amazonaws.com/my-bucket/data.csv")

    assert locator.bucket == "my-bucket"
    assert locator.key == "data.csv"
    assert locator.region is None


def test_s3_locator_builds_url_from_parts() -> None:
    default_region = S3Locator(bucket="my-bucket", key="dir/a b.txt")
    other_region = S3Locator(bucket="my-bucket", key="dir/a b.txt", region="eu-west-1")

    assert default_region.url == "https://my-bucket.s3.amazonaws.com/dir/a%20b.txt"
    assert other_region.url == "https://my-bucket.s3.eu-west-1.amazonaws.com/dir/a%20b.txt"


def test_s3_locator_rejects_unparseable_url() -> None:
    with pytest.raises(ValidationError):
        S3Locator(url="https://example.com/not-s3")


def test_blob_locator_parses_url() -> None:
    locator = BlobStorageLocator(url="https://acct.blob.core.windows.net/media/dir/video.mp4")

    assert locator.account == "acct"
    assert locator.container == "media"
    assert locator.blob_name == "dir/video.mp4"


def test_parse_locator_dispatches_on_type_tag() -> None:
    s3 = parse_locator({"@type": "S3Locator", "url": "https://b.s3.amazonaws.com/k"})
    blob = parse_locator(
        {"@type": "BlobStorageLocator", "account": "acct", "container": "c", "blobName": "x"}
    )
    generic = parse_locator({"@type": "GenericLocator", "url": "https://example.com/file"})
    legacy = parse_locator({"@type": "Locator", "url": "https://example.com/file"})

    assert isinstance(s3, S3Locator)
    assert isinstance(blob, BlobStorageLocator)
    assert blob.url == "https://acct.blob.core.windows.net/c/x"
    assert isinstance(generic, GenericLocator)
    assert isinstance(legacy, GenericLocator)


def test_parse_locator_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        parse_locator({"@type": "FtpLocator", "url": "ftp://example.com/file"})


def test_locators_are_equal_when_urls_match() -> None:
    from_parts = S3Locator(bucket="b", key="k")
    from_url = parse_locator({"@type": "S3Locator", "url": "https://b.s3.amazonaws.com/k"})

    assert from_parts == from_url
    assert len({from_parts, from_url}) == 1
    assert from_parts != S3Locator(bucket="b", key="other")


def test_with_object_name_keeps_container() -> None:
    folder = S3Locator(bucket="b", key="in/", region="eu-west-1")
    blob_folder = BlobStorageLocator(account="acct", container="c", blob_name="in/")

    assert folder.with_object_name("in/a.txt") == S3Locator(
        bucket="b", key="in/a.txt", region="eu-west-1"
    )
    assert blob_folder.with_object_name("out/a.txt").blob_name == "out/a.txt"


def test_locator_type_name_reads_models_and_payloads() -> None:
    assert locator_type_name(S3Locator(bucket="b", key="k")) == "S3Locator"
    assert locator_type_name({"@type": "FtpLocator"}) == "FtpLocator"
    assert locator_type_name(42) == "int"


def test_restore_work_item_id_is_derived_from_url() -> None:
    locator = S3Locator(bucket="b", key="x/y.txt")

    assert build_restore_work_item_id(locator) == (
        "/restore-work-items/https-b.s3.amazonaws.com-x-y.txt"
    )
