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

# Firestore collections
EXHIBITIONS_COLLECTION = "exhibitions"
ARTISTS_COLLECTION = "artists"
USERS_COLLECTION = "users"
ART_LOCATIONS_COLLECTION = "artLocations"
MAP_CONTENT_COLLECTION = "mapContent"
HISTORY_CONTENT_COLLECTION = "historyContent"

# Single-document collections use a fixed document id.
MAP_CONTENT_DOCUMENT_ID = "current"

# Cloud Storage folders
EXHIBITIONS_STORAGE_PATH = "exhibitions"
ARTISTS_STORAGE_PATH = "artists"
MAP_STORAGE_PATH = "map"
ART_LOCATIONS_STORAGE_PATH = "artLocations"
DOCUMENTS_STORAGE_PATH = "documents"

MAP_IMAGE_FILENAME = "current.jpg"

IMAGE_FOLDERS = (
    EXHIBITIONS_STORAGE_PATH,
    ARTISTS_STORAGE_PATH,
    MAP_STORAGE_PATH,
    ART_LOCATIONS_STORAGE_PATH,
)

# Document fields maintained by the document store itself.
CREATED_AT_FIELD = "createdAt"
UPDATED_AT_FIELD = "updatedAt"
