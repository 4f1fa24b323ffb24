# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

from dataclasses import dataclass, field
from typing import Any, List, Optional


@dataclass
class VisitorInfo:
    hours: str = ""
    ticket_info: str = ""
    location: str = ""


@dataclass
class Exhibition:
    """An exhibition shown on the home page and on its own detail page."""

    id: str = ""
    title: str = ""
    description: str = ""
    short_description: str = ""
    main_image: str = ""
    gallery: List[str] = field(default_factory=list)
    # ISO dates (YYYY-MM-DD), as entered in the admin form.
    start_date: str = ""
    end_date: str = ""
    artist_ids: List[str] = field(default_factory=list)
    is_featured: bool = False
    visitor_info: VisitorInfo = field(default_factory=VisitorInfo)
    created_at: Optional[Any] = None  # Firestore timestamp
    updated_at: Optional[Any] = None  # Firestore timestamp


@dataclass
class PortfolioItem:
    image_url: str
    title: str = ""
    year: str = ""


@dataclass
class Artist:
    id: str = ""
    name: str = ""
    bio: str = ""
    main_image: str = ""
    portfolio: List[PortfolioItem] = field(default_factory=list)
    exhibitions: List[str] = field(default_factory=list)
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None


@dataclass
class Coordinates:
    """Pin position in percent of the map image width/height."""

    x: float = 0.0
    y: float = 0.0


@dataclass
class ArtLocation:
    """An artwork pinned on the park map."""

    id: str = ""
    title: str = ""
    description: str = ""
    image_url: str = ""
    artist: str = ""
    artist_id: Optional[str] = None
    coordinates: Coordinates = field(default_factory=Coordinates)
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None


@dataclass
class MapContent:
    id: str = ""
    image_url: str = ""
    storage_path: str = ""
    updated_at: Optional[Any] = None


@dataclass
class Milestone:
    year: int
    title: str = ""
    description: str = ""


@dataclass
class HistoryContent:
    id: str = ""
    main_text: str = ""
    milestones: List[Milestone] = field(default_factory=list)
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None


@dataclass
class User:
    id: str
    email: Optional[str]
    is_admin: bool = False
