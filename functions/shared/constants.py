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

MAX_IMAGE_SIZE_BYTES = 5 * 1024 * 1024
MAX_DOCUMENT_SIZE_BYTES = 10 * 1024 * 1024
DOCUMENT_CONTENT_TYPE = "application/pdf"

MAX_TITLE_LENGTH = 200
MAX_TEXT_LENGTH = 20000
MAX_EMAIL_LENGTH = 254
MIN_PASSWORD_LENGTH = 6

MIN_COORDINATE = 0.0
MAX_COORDINATE = 100.0

MAX_MILESTONE_YEAR = 9999

PRIVACY_DOCUMENT_NAME = "datenschutz.pdf"
DEFAULT_MAP_URL = (
    "https://images.unsplash.com/photo-1524813686514-a57563d77965"
    "?w=1200&auto=format&fit=crop&q=80"
)

# Login backoff
LOGIN_BASE_DELAY_SECONDS = 60
LOGIN_MAX_ATTEMPTS = 3
LOGIN_RESET_AFTER_SECONDS = 24 * 60 * 60
