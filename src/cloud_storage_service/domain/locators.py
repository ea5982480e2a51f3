"""Locators identifying objects in S3, Blob Storage, or at a bare URL."""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal
from urllib.parse import quote, unquote

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

_S3_VIRTUAL_HOST_PATTERN = re.compile(
    r"^https://(?P<bucket>[^./]+)\.s3(?:[.-](?P<region>[a-z0-9-]+))?\.amazonaws\.com/(?P<key>.*)$"
)
_S3_PATH_STYLE_PATTERN = re.compile(
    r"^https://s3(?:[.-](?P<region>[a-z0-9-]+))?\.amazonaws\.com/(?P<bucket>[^/]+)/(?P<key>.*)$"
)
_BLOB_PATTERN = re.compile(
    r"^https://(?P<account>[^./]+)\.blob\.core\.windows\.net"
    r"/(?P<container>[^/]+)/(?P<blob_name>.*)$"
)
_DEFAULT_S3_REGION = "us-east-1"


def build_s3_url(bucket: str, key: str, region: str | None = None) -> str:
    """Return the virtual-hosted URL of an S3 object."""

    path = quote(key, safe="/~")
    if region is None or region == _DEFAULT_S3_REGION:
        return f"https://{bucket}.s3.amazonaws.com/{path}"
    return f"https://{bucket}.s3.{region}.amazonaws.com/{path}"


def build_blob_url(account: str, container: str, blob_name: str) -> str:
    """Return the URL of a blob."""

    return f"https://{account}.blob.core.windows.net/{container}/{quote(blob_name, safe='/~')}"


class LocatorModel(BaseModel):
    """Base model for locators. Two locators are equal when their URLs are."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    url: str

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LocatorModel):
            return NotImplemented
        return self.url == other.url

    def __hash__(self) -> int:
        return hash(self.url)


class S3Locator(LocatorModel):
    """Object in an S3 bucket."""

    type_: Literal["S3Locator"] = Field(default="S3Locator", alias="@type")
    bucket: str
    key: str
    region: str | None = None

    @model_validator(mode="before")
    @classmethod
    def fill_url_or_parts(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        values = dict(data)
        url = values.get("url")
        if values.get("bucket") and values.get("key") is not None:
            if not url:
                values["url"] = build_s3_url(values["bucket"], values["key"], values.get("region"))
            return values
        if not url:
            raise ValueError("S3Locator requires either 'url' or 'bucket' and 'key'.")
        match = _S3_VIRTUAL_HOST_PATTERN.match(url) or _S3_PATH_STYLE_PATTERN.match(url)
        if match is None:
            raise ValueError(f"Unable to parse bucket and key from S3 url '{url}'.")
        values.setdefault("bucket", match.group("bucket"))
        values.setdefault("key", unquote(match.group("key")))
        if match.group("region") and not values.get("region"):
            values["region"] = match.group("region")
        return values

    @property
    def object_name(self) -> str:
        return self.key

    def with_object_name(self, name: str) -> S3Locator:
        """Return a locator for another key in the same bucket."""

        return S3Locator(bucket=self.bucket, key=name, region=self.region)


class BlobStorageLocator(LocatorModel):
    """Blob in an Azure Storage container."""

    type_: Literal["BlobStorageLocator"] = Field(default="BlobStorageLocator", alias="@type")
    account: str
    container: str
    blob_name: str = Field(alias="blobName")

    @model_validator(mode="before")
    @classmethod
    def fill_url_or_parts(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        values = dict(data)
        url = values.get("url")
        blob_name = values.get("blobName", values.get("blob_name"))
        if values.get("account") and values.get("container") and blob_name is not None:
            if not url:
                values["url"] = build_blob_url(values["account"], values["container"], blob_name)
            return values
        if not url:
            raise ValueError(
                "BlobStorageLocator requires either 'url' or 'account', 'container' and 'blobName'."
            )
        match = _BLOB_PATTERN.match(url)
        if match is None:
            raise ValueError(f"Unable to parse account and container from blob url '{url}'.")
        values.setdefault("account", match.group("account"))
        values.setdefault("container", match.group("container"))
        values.setdefault("blobName", unquote(match.group("blob_name")))
        return values

    @property
    def object_name(self) -> str:
        return self.blob_name

    def with_object_name(self, name: str) -> BlobStorageLocator:
        """Return a locator for another blob in the same container."""

        return BlobStorageLocator(account=self.account, container=self.container, blob_name=name)


class GenericLocator(LocatorModel):
    """Object reachable only through its URL."""

    type_: Literal["GenericLocator", "Locator"] = Field(default="GenericLocator", alias="@type")


Locator = Annotated[
    S3Locator | BlobStorageLocator | GenericLocator,
    Field(discriminator="type_"),
]

_LOCATOR_ADAPTER: TypeAdapter[S3Locator | BlobStorageLocator | GenericLocator] = TypeAdapter(
    Locator
)


def parse_locator(data: Any) -> S3Locator | BlobStorageLocator | GenericLocator:
    """Validate a JSON-like payload into a concrete locator."""

    return _LOCATOR_ADAPTER.validate_python(data)


def locator_type_name(locator: Any) -> str:
    """Return the wire tag of a locator payload or model for diagnostics."""

    if isinstance(locator, LocatorModel):
        return str(getattr(locator, "type_", type(locator).__name__))
    if isinstance(locator, dict):
        return str(locator.get("@type", "<unknown>"))
    return type(locator).__name__


__all__ = [
    "BlobStorageLocator",
    "GenericLocator",
    "Locator",
    "LocatorModel",
    "S3Locator",
    "build_blob_url",
    "build_s3_url",
    "locator_type_name",
    "parse_locator",
]
