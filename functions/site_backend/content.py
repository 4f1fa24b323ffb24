"""
Content data access for the public site and the admin panel.

Wraps the document store and object storage: converts between stored
camelCase documents and the dataclasses in ``shared.types``, validates
uploads, and keeps images in storage in step with the records using them.
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Type, TypeVar

from dacite import Config, from_dict

from shared import constants
from shared.firebase_constants import (
    ART_LOCATIONS_COLLECTION,
    ARTISTS_COLLECTION,
    CREATED_AT_FIELD,
    DOCUMENTS_STORAGE_PATH,
    EXHIBITIONS_COLLECTION,
    HISTORY_CONTENT_COLLECTION,
    IMAGE_FOLDERS,
    MAP_CONTENT_COLLECTION,
    MAP_CONTENT_DOCUMENT_ID,
    MAP_IMAGE_FILENAME,
    MAP_STORAGE_PATH,
    UPDATED_AT_FIELD,
)
from shared.json_utils import convert_keys
from shared.types import (
    ArtLocation,
    Artist,
    Exhibition,
    HistoryContent,
    MapContent,
    Milestone,
)
from site_backend.db import ContentDb, DocumentNotFoundError
from site_backend.storage import StorageClient, path_from_url

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class ContentValidationError(ValueError):
    """Raised when submitted content or an upload fails validation."""


class ContentNotFoundError(LookupError):
    def __init__(self, kind: str, item_id: str):
        super().__init__(f"{kind} not found: {item_id}")
        self.kind = kind
        self.item_id = item_id


@dataclass
class FileUpload:
    """An uploaded file, independent of the web framework that received it."""

    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


def from_document(data_class: Type[T], document: dict) -> T:
    return from_dict(
        data_class=data_class,
        data=convert_keys(document, "camel_to_snake"),
        config=Config(check_types=False),
    )


def to_document(record) -> dict:
    """Dataclass -> stored document, without the fields the store manages."""
    document = convert_keys(asdict(record), "snake_to_camel")
    for key in ("id", CREATED_AT_FIELD, UPDATED_AT_FIELD):
        document.pop(key, None)
    return document


def sanitize_filename(filename: str) -> str:
    cleaned = _UNSAFE_FILENAME_CHARS.sub("-", filename or "").strip("-.")
    return cleaned or "upload"


def normalize_milestone_year(value, current_year: int | None = None) -> int:
    """Falls back to the current year for missing or invalid years."""
    fallback = current_year or datetime.now(timezone.utc).year
    try:
        year = int(str(value).strip())
    except (TypeError, ValueError):
        return fallback
    if year < 1 or year > constants.MAX_MILESTONE_YEAR:
        return fallback
    return year


def sort_milestones(milestones: List[Milestone]) -> List[Milestone]:
    """Newest first."""
    return sorted(milestones, key=lambda milestone: milestone.year, reverse=True)


class ContentService:
    def __init__(
        self,
        db: ContentDb,
        storage: StorageClient,
        *,
        max_image_size: int = constants.MAX_IMAGE_SIZE_BYTES,
        max_document_size: int = constants.MAX_DOCUMENT_SIZE_BYTES,
        clock: Callable[[], float] = time.time,
    ):
        self.db = db
        self.storage = storage
        self.max_image_size = max_image_size
        self.max_document_size = max_document_size
        self.clock = clock

    # Images and documents

    def upload_image(
        self, upload: FileUpload, folder: str, name: str | None = None
    ) -> str:
        if folder not in IMAGE_FOLDERS:
            raise ContentValidationError(f"Unknown image folder: {folder}")
        if not (upload.content_type or "").startswith("image/"):
            raise ContentValidationError("File must be an image")
        if upload.size > self.max_image_size:
            limit_mb = self.max_image_size // (1024 * 1024)
            raise ContentValidationError(f"Image must be less than {limit_mb}MB")

        filename = name or (
            f"{int(self.clock() * 1000)}-{sanitize_filename(upload.filename)}"
        )
        path = f"{folder}/{filename}"
        url = self.storage.upload_bytes(path, upload.data, upload.content_type)
        logger.info("Uploaded image %s (%d bytes)", path, upload.size)
        return url

    def delete_image(self, url: str) -> None:
        """Best effort: a missing or broken image must not block deletes."""
        if not url:
            return
        try:
            self.storage.delete(path_from_url(url))
        except Exception as e:
            logger.warning("Error deleting image %s: %s", url, e)

    def upload_document(self, upload: FileUpload, name: str) -> str:
        if upload.content_type != constants.DOCUMENT_CONTENT_TYPE:
            raise ContentValidationError("File must be a PDF document")
        if upload.size > self.max_document_size:
            limit_mb = self.max_document_size // (1024 * 1024)
            raise ContentValidationError(f"Document must be less than {limit_mb}MB")
        path = f"{DOCUMENTS_STORAGE_PATH}/{sanitize_filename(name)}"
        return self.storage.upload_bytes(path, upload.data, upload.content_type)

    def get_document_url(self, name: str) -> str:
        url = self.storage.get_download_url(
            f"{DOCUMENTS_STORAGE_PATH}/{sanitize_filename(name)}"
        )
        if not url:
            raise ContentNotFoundError("Document", name)
        return url

    # Generic helpers

    def _list(self, collection: str, data_class: Type[T]) -> List[T]:
        return [
            from_document(data_class, document)
            for document in self.db.list_documents(collection)
        ]

    def _get(self, collection: str, data_class: Type[T], item_id: str) -> T:
        document = self.db.get_document(collection, item_id)
        if document is None:
            raise ContentNotFoundError(data_class.__name__, item_id)
        return from_document(data_class, document)

    def _update(
        self, collection: str, item_id: str, record, exclude: tuple = ()
    ) -> None:
        document = to_document(record)
        for key in exclude:
            document.pop(key, None)
        try:
            self.db.update_document(collection, item_id, document)
        except DocumentNotFoundError as e:
            raise ContentNotFoundError(type(record).__name__, item_id) from e

    # Artists

    def list_artists(self) -> List[Artist]:
        return sorted(
            self._list(ARTISTS_COLLECTION, Artist), key=lambda a: a.name.lower()
        )

    def get_artist(self, artist_id: str) -> Artist:
        return self._get(ARTISTS_COLLECTION, Artist, artist_id)

    def create_artist(self, artist: Artist) -> str:
        if not artist.main_image:
            raise ContentValidationError("Main image is required")
        document = to_document(artist)
        document["exhibitions"] = []
        artist_id = self.db.add_document(ARTISTS_COLLECTION, document)
        logger.info("Created artist %s (%s)", artist.name, artist_id)
        return artist_id

    def update_artist(self, artist_id: str, artist: Artist) -> None:
        # The exhibitions list is not edited through the artist form.
        self._update(ARTISTS_COLLECTION, artist_id, artist, exclude=("exhibitions",))

    def delete_artist(self, artist_id: str) -> None:
        document = self.db.get_document(ARTISTS_COLLECTION, artist_id)
        if document is not None:
            artist = from_document(Artist, document)
            self.delete_image(artist.main_image)
            for item in artist.portfolio:
                self.delete_image(item.image_url)
        self.db.delete_document(ARTISTS_COLLECTION, artist_id)
        logger.info("Deleted artist %s", artist_id)

    # Exhibitions

    def list_exhibitions(self) -> List[Exhibition]:
        return sorted(
            self._list(EXHIBITIONS_COLLECTION, Exhibition),
            key=lambda e: e.start_date,
            reverse=True,
        )

    def get_exhibition(self, exhibition_id: str) -> Exhibition:
        return self._get(EXHIBITIONS_COLLECTION, Exhibition, exhibition_id)

    def list_exhibitions_for_artist(self, artist_id: str) -> List[Exhibition]:
        return [
            from_document(Exhibition, document)
            for document in self.db.query_documents(
                EXHIBITIONS_COLLECTION, "artistIds", "array_contains", artist_id
            )
        ]

    def get_featured_exhibition(
        self, exhibitions: List[Exhibition] | None = None
    ) -> Optional[Exhibition]:
        """
        The exhibition flagged as featured, else the one that starts last.
        """
        if exhibitions is None:
            exhibitions = self._list(EXHIBITIONS_COLLECTION, Exhibition)
        if not exhibitions:
            return None
        for exhibition in exhibitions:
            if exhibition.is_featured:
                return exhibition
        return max(exhibitions, key=lambda e: e.start_date)

    def list_regular_exhibitions(
        self, featured: Optional[Exhibition], exhibitions: List[Exhibition]
    ) -> List[Exhibition]:
        featured_id = featured.id if featured else None
        return [
            exhibition
            for exhibition in exhibitions
            if not exhibition.is_featured and exhibition.id != featured_id
        ]

    def create_exhibition(self, exhibition: Exhibition) -> str:
        if not exhibition.main_image:
            raise ContentValidationError("Main image is required")
        exhibition_id = self.db.add_document(
            EXHIBITIONS_COLLECTION, to_document(exhibition)
        )
        logger.info("Created exhibition %s (%s)", exhibition.title, exhibition_id)
        return exhibition_id

    def update_exhibition(self, exhibition_id: str, exhibition: Exhibition) -> None:
        self._update(EXHIBITIONS_COLLECTION, exhibition_id, exhibition)

    def delete_exhibition(self, exhibition_id: str) -> None:
        document = self.db.get_document(EXHIBITIONS_COLLECTION, exhibition_id)
        if document is not None:
            exhibition = from_document(Exhibition, document)
            self.delete_image(exhibition.main_image)
            for url in exhibition.gallery:
                self.delete_image(url)
        self.db.delete_document(EXHIBITIONS_COLLECTION, exhibition_id)
        logger.info("Deleted exhibition %s", exhibition_id)

    # Map

    def list_art_locations(self) -> List[ArtLocation]:
        return sorted(
            self._list(ART_LOCATIONS_COLLECTION, ArtLocation),
            key=lambda location: location.title.lower(),
        )

    def get_art_location(self, location_id: str) -> ArtLocation:
        return self._get(ART_LOCATIONS_COLLECTION, ArtLocation, location_id)

    def create_art_location(self, location: ArtLocation) -> str:
        return self.db.add_document(ART_LOCATIONS_COLLECTION, to_document(location))

    def update_art_location(self, location_id: str, location: ArtLocation) -> None:
        self._update(ART_LOCATIONS_COLLECTION, location_id, location)

    def delete_art_location(self, location_id: str) -> None:
        document = self.db.get_document(ART_LOCATIONS_COLLECTION, location_id)
        if document is not None:
            self.delete_image(from_document(ArtLocation, document).image_url)
        self.db.delete_document(ART_LOCATIONS_COLLECTION, location_id)

    def get_map_content(self) -> Optional[MapContent]:
        document = self.db.get_document(
            MAP_CONTENT_COLLECTION, MAP_CONTENT_DOCUMENT_ID
        )
        return from_document(MapContent, document) if document else None

    def get_map_url(self) -> Optional[str]:
        content = self.get_map_content()
        if content and content.image_url:
            return content.image_url
        # Maps uploaded before the mapContent document existed.
        return self.storage.get_download_url(f"{MAP_STORAGE_PATH}/{MAP_IMAGE_FILENAME}")

    def set_map_image(self, upload: FileUpload) -> str:
        url = self.upload_image(upload, MAP_STORAGE_PATH, name=MAP_IMAGE_FILENAME)
        self.db.set_document(
            MAP_CONTENT_COLLECTION,
            MAP_CONTENT_DOCUMENT_ID,
            to_document(
                MapContent(
                    image_url=url,
                    storage_path=f"{MAP_STORAGE_PATH}/{MAP_IMAGE_FILENAME}",
                )
            ),
            merge=True,
        )
        return url

    # History

    def get_history_content(self) -> Optional[HistoryContent]:
        documents = self.db.list_documents(HISTORY_CONTENT_COLLECTION)
        if not documents:
            return None
        content = from_document(HistoryContent, documents[0])
        content.milestones = sort_milestones(content.milestones)
        return content

    def save_history_content(
        self, main_text: str, milestones: List[Milestone]
    ) -> str:
        normalized = [
            Milestone(
                year=normalize_milestone_year(milestone.year),
                title=milestone.title,
                description=milestone.description,
            )
            for milestone in milestones
        ]
        content = HistoryContent(main_text=main_text, milestones=normalized)
        existing = self.db.list_documents(HISTORY_CONTENT_COLLECTION)
        if existing:
            content_id = existing[0]["id"]
            self._update(HISTORY_CONTENT_COLLECTION, content_id, content)
            return content_id
        return self.db.add_document(HISTORY_CONTENT_COLLECTION, to_document(content))
