"""
Pydantic schemas for the site backend.

Payload models validate what the admin panel submits (JSON or HTML forms)
and convert it to the dataclasses in ``shared.types``; response models
describe the JSON API.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from shared.constants import (
    MAX_COORDINATE,
    MAX_EMAIL_LENGTH,
    MAX_TEXT_LENGTH,
    MAX_TITLE_LENGTH,
    MIN_COORDINATE,
)
from shared.types import (
    ArtLocation,
    Artist,
    Coordinates,
    Exhibition,
    Milestone,
    PortfolioItem,
    VisitorInfo,
)

RequiredTitle = Annotated[str, Field(min_length=1, max_length=MAX_TITLE_LENGTH)]
RequiredText = Annotated[str, Field(min_length=1, max_length=MAX_TEXT_LENGTH)]


class _Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)


class VisitorInfoPayload(_Payload):
    hours: RequiredTitle
    ticket_info: RequiredTitle
    location: RequiredTitle


class ExhibitionPayload(_Payload):
    title: RequiredTitle
    description: RequiredText
    short_description: RequiredText
    main_image: str = ""
    gallery: List[str] = Field(default_factory=list)
    start_date: date
    end_date: date
    artist_ids: List[str] = Field(default_factory=list)
    is_featured: bool = False
    visitor_info: VisitorInfoPayload

    @model_validator(mode="after")
    def _check_dates(self) -> "ExhibitionPayload":
        if self.end_date < self.start_date:
            raise ValueError("End date must not be before the start date")
        return self

    def to_exhibition(self) -> Exhibition:
        return Exhibition(
            title=self.title,
            description=self.description,
            short_description=self.short_description,
            main_image=self.main_image,
            gallery=list(self.gallery),
            start_date=self.start_date.isoformat(),
            end_date=self.end_date.isoformat(),
            artist_ids=list(dict.fromkeys(self.artist_ids)),
            is_featured=self.is_featured,
            visitor_info=VisitorInfo(**self.visitor_info.model_dump()),
        )


class PortfolioItemPayload(_Payload):
    image_url: str = Field(..., min_length=1)
    title: str = Field(default="", max_length=MAX_TITLE_LENGTH)
    year: str = Field(default="", max_length=16)


class ArtistPayload(_Payload):
    name: RequiredTitle
    bio: RequiredText
    main_image: str = ""
    portfolio: List[PortfolioItemPayload] = Field(default_factory=list)

    def to_artist(self) -> Artist:
        return Artist(
            name=self.name,
            bio=self.bio,
            main_image=self.main_image,
            portfolio=[PortfolioItem(**item.model_dump()) for item in self.portfolio],
        )


class CoordinatesPayload(BaseModel):
    x: float = Field(..., ge=MIN_COORDINATE, le=MAX_COORDINATE)
    y: float = Field(..., ge=MIN_COORDINATE, le=MAX_COORDINATE)


class ArtLocationPayload(_Payload):
    title: RequiredTitle
    description: RequiredText
    artist: RequiredTitle
    artist_id: Optional[str] = None
    image_url: str = ""
    coordinates: CoordinatesPayload

    def to_location(self) -> ArtLocation:
        return ArtLocation(
            title=self.title,
            description=self.description,
            artist=self.artist,
            artist_id=self.artist_id or None,
            image_url=self.image_url,
            coordinates=Coordinates(x=self.coordinates.x, y=self.coordinates.y),
        )


class MilestonePayload(_Payload):
    # Invalid years are replaced with the current year when saving.
    year: Union[int, str, None] = None
    title: str = Field(default="", max_length=MAX_TITLE_LENGTH)
    description: str = Field(default="", max_length=MAX_TEXT_LENGTH)


class HistoryPayload(_Payload):
    main_text: str = Field(default="", max_length=MAX_TEXT_LENGTH)
    milestones: List[MilestonePayload] = Field(default_factory=list)

    def to_milestones(self) -> List[Milestone]:
        return [
            Milestone(year=item.year, title=item.title, description=item.description)
            for item in self.milestones
        ]


class LoginRequest(_Payload):
    email: str = Field(..., min_length=3, max_length=MAX_EMAIL_LENGTH)
    password: str = Field(..., min_length=1)


# Responses


class _Record(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class VisitorInfoModel(_Record):
    hours: str
    ticket_info: str
    location: str


class ExhibitionModel(_Record):
    id: str
    title: str
    description: str
    short_description: str
    main_image: str
    gallery: List[str]
    start_date: str
    end_date: str
    artist_ids: List[str]
    is_featured: bool
    visitor_info: VisitorInfoModel
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PortfolioItemModel(_Record):
    image_url: str
    title: str
    year: str


class ArtistModel(_Record):
    id: str
    name: str
    bio: str
    main_image: str
    portfolio: List[PortfolioItemModel]
    exhibitions: List[str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CoordinatesModel(_Record):
    x: float
    y: float


class ArtLocationModel(_Record):
    id: str
    title: str
    description: str
    image_url: str
    artist: str
    artist_id: Optional[str] = None
    coordinates: CoordinatesModel


class MilestoneModel(_Record):
    year: int
    title: str
    description: str


class HistoryModel(_Record):
    id: str
    main_text: str
    milestones: List[MilestoneModel]
    updated_at: Optional[datetime] = None


class ListExhibitionsResponse(BaseModel):
    exhibitions: List[ExhibitionModel]


class FeaturedExhibitionResponse(BaseModel):
    exhibition: Optional[ExhibitionModel] = None


class ListArtistsResponse(BaseModel):
    artists: List[ArtistModel]


class ArtistDetailResponse(BaseModel):
    artist: ArtistModel
    exhibitions: List[ExhibitionModel]


class MapResponse(BaseModel):
    map_url: Optional[str] = None
    default_map_url: str
    locations: List[ArtLocationModel]


class HistoryResponse(BaseModel):
    history: Optional[HistoryModel] = None


class DocumentUrlResponse(BaseModel):
    name: str
    url: str


class UploadResponse(BaseModel):
    url: str


class CreatedResponse(BaseModel):
    id: str


class StatusResponse(BaseModel):
    status: Literal["ok"]


class UserResponse(BaseModel):
    id: str
    email: Optional[str] = None
    is_admin: bool


def validation_messages(error: ValidationError) -> List[str]:
    """Flattens a ValidationError into messages for form pages."""
    messages = []
    for item in error.errors():
        location = ".".join(
            str(part) for part in item.get("loc", ()) if part != "__root__"
        )
        message = item.get("msg", "Invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return messages
